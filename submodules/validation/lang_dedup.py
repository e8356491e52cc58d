"""
Language dedup: keep one URL per translated page.

URLs of an entity are grouped by slug (the path without its leading
language segment). A slug seen once is kept whatever its language; a slug
seen in several languages keeps the preferred language and rejects the
translations.

    /en/news/article-slug/  -> kept
    /de/news/article-slug/  -> language_duplicate
    /de/news/german-only/   -> kept (regional exclusive)
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from schema import RejectedUrl, UrlCandidate

from ..base import (
    OptionSpec,
    ValidationModule,
    as_candidates,
    context_logger,
    validation_result,
)


REASON = 'language_duplicate'

DEFAULT_LANGUAGE_PREFERENCE = [
    'en', 'de', 'sv', 'es', 'pt', 'fr', 'it', 'nl', 'pl', 'ja', 'ko', 'zh', 'ru',
]

# /en/, /de/, /en-us/, /pt-br/
LANG_PREFIX = re.compile(r'^/([a-z]{2}(?:-[a-z]{2})?)/', re.IGNORECASE)


def normalize_slug(slug: str) -> str:
    slug = slug.lower().rstrip('/')
    return re.sub(r'^/+', '/', slug)


def language_and_slug(url: str) -> tuple[str | None, str]:
    """Language code (region dropped: en-us -> en) and normalized slug."""
    try:
        path = urlparse(url).path
    except (ValueError, AttributeError):
        return None, str(url)

    match = LANG_PREFIX.match(path)
    if match:
        language = match.group(1).lower().split('-')[0]
        return language, normalize_slug(LANG_PREFIX.sub('/', path, count=1))
    return None, normalize_slug(path)


def select_canonical(
    group: list[tuple[UrlCandidate, str | None]],
    preference: list[str],
    fallback: str = 'first_found',
) -> tuple[UrlCandidate, str | None]:
    for lang in preference:
        for member in group:
            if member[1] == lang:
                return member

    if fallback == 'alphabetical':
        return sorted(group, key=lambda member: member[1] or 'zzz')[0]
    return group[0]


def execute(urls, config: dict, context: dict):
    log = context_logger(context)
    urls = as_candidates(urls)
    preference = [p.lower() for p in (config.get('language_preference') or DEFAULT_LANGUAGE_PREFERENCE)]
    fallback = config.get('fallback') or 'first_found'

    # entity -> slug -> [(candidate, language)]; dicts keep first-seen order
    groups: dict[str, dict[str, list]] = {}
    for item in urls:
        language, slug = language_and_slug(item.url)
        entity_key = item.run_entity_id or item.entity_id or ''
        groups.setdefault(entity_key, {}).setdefault(slug, []).append((item, language))

    valid, invalid = [], []
    for slug_groups in groups.values():
        for slug, group in slug_groups.items():
            if len(group) == 1:
                valid.append(group[0][0])
                continue

            canonical, canonical_lang = select_canonical(group, preference, fallback)
            for item, language in group:
                if item is canonical:
                    valid.append(item)
                    continue
                item.metadata['canonical_url'] = canonical.url
                invalid.append(RejectedUrl(
                    candidate=item,
                    reason=REASON,
                    details=f"Translation of {canonical.url} ({canonical_lang or 'unknown'})",
                ))
            log.info(
                f'[lang-dedup] Slug "{slug}": kept {canonical_lang or "unknown"}, '
                f'filtered {len(group) - 1} translations'
            )

    log.info(f"[lang-dedup] Processed {len(urls)} URLs: {len(valid)} kept, {len(invalid)} filtered as translations")
    return validation_result(
        urls, valid, invalid,
        groups_processed=sum(len(g) for g in groups.values()),
        translations_filtered=len(invalid),
    )


SUBMODULE = ValidationModule(
    id='lang-dedup',
    name='Language Dedup',
    category='dedup',
    version='1.0.0',
    description='Remove duplicate language variants, keep preferred language',
    cost='cheap',
    options=[
        OptionSpec('language_preference', 'array', DEFAULT_LANGUAGE_PREFERENCE, None,
                   'Ordered list of preferred languages (first = highest priority)'),
        OptionSpec('fallback', 'select', 'first_found', ['first_found', 'alphabetical'],
                   'How to select canonical if no preferred language found'),
    ],
    execute=execute,
)
