"""
Dedupe: keep the first occurrence of each URL, reject later ones.

URLs are compared after normalization; by default within an entity only.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from schema import RejectedUrl

from ..base import (
    OptionSpec,
    ValidationModule,
    as_candidates,
    context_logger,
    validation_result,
)


REASON = 'duplicate'

TRACKING_PARAMS = {'ref', 'fbclid', 'gclid'}
TRACKING_PREFIX = 'utm_'

INDEX_PAGE = re.compile(r'/(index\.html?|index\.php|default\.aspx)$', re.IGNORECASE)

DISCOVERY_METHODS = ['sitemap', 'navigation', 'seed-expansion']


def _is_tracking(key: str) -> bool:
    key = key.lower()
    return key in TRACKING_PARAMS or key.startswith(TRACKING_PREFIX)


def normalize_url(url: str, fuzzy: bool = False) -> str:
    """
    Canonical form for comparison.

    Lowercases scheme and host, strips trailing slashes (root stays "/"),
    drops tracking parameters and sorts the rest. Fuzzy mode also ignores
    the scheme, a leading "www.", the fragment, trailing index pages and
    path case. Input without a host comes back lowercased; scheme-less
    "//host/path" keys (the fuzzy output) keep their query case. Idempotent.
    """
    try:
        parts = urlsplit(url)
    except (ValueError, AttributeError):
        return str(url).lower()
    if not parts.netloc:
        return url.lower()

    netloc = parts.netloc.lower()
    path = parts.path.rstrip('/') or '/'

    params = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not _is_tracking(k)]
    params.sort(key=lambda kv: kv[0])
    query = urlencode(params)

    if not fuzzy:
        return urlunsplit((parts.scheme.lower(), netloc, path, query, parts.fragment))

    while netloc.startswith('www.'):
        netloc = netloc[4:]
    path = path.lower()
    while INDEX_PAGE.search(path):
        path = INDEX_PAGE.sub('', path).rstrip('/')
    path = path or '/'
    return urlunsplit(('', netloc, path, query, ''))


def execute(urls, config: dict, context: dict):
    log = context_logger(context)
    urls = as_candidates(urls)
    across_entities = config.get('dedupe_across_entities') is True
    preferred = config.get('prefer_discovery_method')
    fuzzy = config.get('match_mode') == 'fuzzy'

    ordered = list(urls)
    if preferred:
        # sort() is stable: input order is kept within each group
        ordered.sort(key=lambda item: 0 if item.discovery_method == preferred else 1)

    seen = {}
    valid, invalid = [], []

    for item in ordered:
        normalized = normalize_url(item.url, fuzzy=fuzzy)
        if across_entities:
            key = normalized
        else:
            key = f"{item.run_entity_id or item.entity_id}:{normalized}"

        original = seen.get(key)
        if original is None:
            seen[key] = item
            valid.append(item)
            continue

        details = f"Duplicate of {original.url} discovered via {original.discovery_method or 'unknown'}"
        invalid.append(RejectedUrl(candidate=item, reason=REASON, details=details))
        log.info(f"[dedupe] Duplicate: {item.url} (original via {original.discovery_method})")

    log.info(f"[dedupe] Processed {len(urls)} URLs: {len(valid)} unique, {len(invalid)} duplicates")
    return validation_result(urls, valid, invalid, duplicate_count=len(invalid))


SUBMODULE = ValidationModule(
    id='dedupe',
    name='Dedupe',
    category='dedup',
    version='1.1.0',
    description='Remove duplicate URLs within each entity',
    cost='cheap',
    options=[
        OptionSpec('dedupe_across_entities', 'boolean', False, [True, False],
                   'Dedupe URLs across all entities (not just within each)'),
        OptionSpec('prefer_discovery_method', 'select', None, DISCOVERY_METHODS + [None],
                   'Prefer URLs from this discovery method when deduping'),
        OptionSpec('match_mode', 'select', 'strict', ['strict', 'fuzzy'],
                   'fuzzy also ignores scheme, www., fragments, index pages and path case'),
    ],
    execute=execute,
)
