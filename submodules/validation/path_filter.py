"""
Path filter: drop URLs whose path marks them as non-content (auth, legal,
commerce, admin, files, pagination, search, archives, listing pages,
social links, feeds) or that point off the entity's domain.

Include patterns override everything else.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from fetch.links import is_same_domain, strip_www

from ..base import (
    OptionSpec,
    ValidationModule,
    as_candidates,
    context_logger,
    partition,
    validation_result,
)


REASON = 'filtered_path'

_I = re.IGNORECASE

DEFAULT_EXCLUDE_PATTERNS = [
    # Auth pages
    re.compile(r'/login\b', _I),
    re.compile(r'/logout\b', _I),
    re.compile(r'/signin\b', _I),
    re.compile(r'/signout\b', _I),
    re.compile(r'/sign-in\b', _I),
    re.compile(r'/sign-out\b', _I),
    re.compile(r'/register\b', _I),
    re.compile(r'/signup\b', _I),
    re.compile(r'/sign-up\b', _I),
    re.compile(r'/forgot-password', _I),
    re.compile(r'/reset-password', _I),
    re.compile(r'/auth/', _I),

    # Legal
    re.compile(r'/terms', _I),
    re.compile(r'/privacy', _I),
    re.compile(r'/cookie', _I),
    re.compile(r'/gdpr', _I),
    re.compile(r'/legal', _I),
    re.compile(r'/disclaimer', _I),

    # E-commerce
    re.compile(r'/cart\b', _I),
    re.compile(r'/checkout\b', _I),
    re.compile(r'/basket\b', _I),
    re.compile(r'/wishlist\b', _I),
    re.compile(r'/order', _I),

    # Admin / internal
    re.compile(r'/admin\b', _I),
    re.compile(r'/dashboard\b', _I),
    re.compile(r'/wp-admin', _I),
    re.compile(r'/wp-login', _I),
    re.compile(r'/wp-content/uploads', _I),
    re.compile(r'/cgi-bin', _I),

    # Files
    re.compile(r'\.(pdf|docx?|xlsx?|pptx?|zip|rar|exe|dmg)$', _I),
    re.compile(r'\.(jpe?g|png|gif|svg|webp)$', _I),
    re.compile(r'\.(mp3|mp4|wav|avi)$', _I),

    # Pagination
    re.compile(r'[?&]page=\d+', _I),
    re.compile(r'/page/\d+', _I),

    # Search results
    re.compile(r'[?&]s=', _I),
    re.compile(r'[?&]q=', _I),
    re.compile(r'[?&]search=', _I),
    re.compile(r'/search\?', _I),

    # Date archives: /2024/01/15/ and /2024/01/
    re.compile(r'/\d{4}/\d{2}/\d{2}/?$'),
    re.compile(r'/\d{4}/\d{2}/?$'),
    re.compile(r'/wp/\d{4}/', _I),

    # Listing pages (teasers, not content)
    re.compile(r'/blog/?$', _I),
    re.compile(r'/news/?$', _I),
    re.compile(r'/articles/?$', _I),
    re.compile(r'/posts/?$', _I),
    re.compile(r'/category/[^/]+/?$', _I),
    re.compile(r'/tags?/[^/]+/?$', _I),
    re.compile(r'/archive/?', _I),
    re.compile(r'/author/[^/]+/?$', _I),
    re.compile(r'/topics?/?$', _I),
    re.compile(r'/all-posts', _I),
    re.compile(r'/latest/?$', _I),

    # Social
    re.compile(r'facebook\.com', _I),
    re.compile(r'twitter\.com', _I),
    re.compile(r'linkedin\.com', _I),
    re.compile(r'instagram\.com', _I),
    re.compile(r'youtube\.com', _I),
    re.compile(r'//(?:www\.)?t\.co/', _I),

    # Feeds
    re.compile(r'/feed/?$', _I),
    re.compile(r'/rss/?$', _I),
    re.compile(r'\.xml$', _I),
    re.compile(r'\.rss$', _I),
]


def _host(url: str | None) -> str | None:
    if not url:
        return None
    full = url if url.startswith('http') else f"https://{url}"
    try:
        host = urlparse(full).hostname
    except ValueError:
        return None
    return strip_www(host) if host else None


def compile_patterns(patterns) -> list[re.Pattern]:
    """Caller patterns are case-insensitive regular expressions."""
    return [p if isinstance(p, re.Pattern) else re.compile(p, _I) for p in patterns or []]


def filter_url(
    url: str,
    entity_website: str | None,
    exclude: list[re.Pattern],
    include: list[re.Pattern],
    same_domain_only: bool = True,
) -> str | None:
    """Why `url` is filtered, or None to keep it."""
    url = url or ''

    for pattern in include:
        if pattern.search(url):
            return None

    entity_host = _host(entity_website)
    if same_domain_only and entity_host:
        url_host = _host(url)
        if url_host and not is_same_domain(url_host, entity_host):
            return f"Different domain: {url_host} vs {entity_host}"

    for pattern in exclude:
        if pattern.search(url):
            return f"Matched exclude pattern: {pattern.pattern}"

    return None


def execute(urls, config: dict, context: dict):
    log = context_logger(context)
    urls = as_candidates(urls)
    extra = compile_patterns(config.get('exclude_patterns'))
    exclude = (DEFAULT_EXCLUDE_PATTERNS + extra) if config.get('use_default_excludes') is not False else extra
    include = compile_patterns(config.get('include_patterns'))
    same_domain_only = config.get('same_domain_only') is not False

    def check(item):
        website = item.entity_website or item.metadata.get('website')
        reason = filter_url(item.url, website, exclude, include, same_domain_only)
        if reason:
            log.info(f"[path-filter] Filtered: {item.url} - {reason}")
        return reason

    valid, invalid = partition(urls, check, REASON)
    log.info(f"[path-filter] Processed {len(urls)} URLs: {len(valid)} kept, {len(invalid)} filtered")
    return validation_result(urls, valid, invalid, filtered_count=len(invalid))


SUBMODULE = ValidationModule(
    id='path-filter',
    name='Path Filter',
    category='filtering',
    version='1.0.0',
    description='Filter out unwanted URL paths (login, terms, etc.)',
    cost='cheap',
    options=[
        OptionSpec('exclude_patterns', 'array', [], None, 'Additional regex patterns to exclude'),
        OptionSpec('include_patterns', 'array', [], None, 'Regex patterns that always keep a URL'),
        OptionSpec('use_default_excludes', 'boolean', True, [True, False], 'Apply the built-in exclude catalogue'),
        OptionSpec('same_domain_only', 'boolean', True, [True, False], "Filter URLs not on the entity's domain"),
    ],
    execute=execute,
)
