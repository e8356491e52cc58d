"""
URL format validation: syntax, protocol, hostname, length and stray
characters.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from ..base import (
    OptionSpec,
    ValidationModule,
    as_candidates,
    context_logger,
    partition,
    validation_result,
)


REASON = 'invalid_format'

DEFAULT_MAX_LENGTH = 2048
DEFAULT_PROTOCOLS = ['http', 'https']

CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')


def validate_url(
    url,
    max_url_length: int = DEFAULT_MAX_LENGTH,
    allowed_protocols: list[str] | None = None,
    require_tld: bool = True,
) -> str | None:
    """Return why `url` is malformed, or None if it is acceptable."""
    protocols = {p.rstrip(':').lower() for p in (allowed_protocols or DEFAULT_PROTOCOLS)}

    if not isinstance(url, str) or not url.strip():
        return 'URL is empty or not a string'

    if len(url) > max_url_length:
        return f"URL exceeds max length of {max_url_length}"

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        parsed.port  # raises on a malformed port
    except ValueError:
        return 'Invalid URL syntax'
    if not parsed.scheme or '://' not in url:
        return 'Invalid URL syntax'

    if parsed.scheme.lower() not in protocols:
        return f"Protocol {parsed.scheme}: not allowed"

    if not hostname:
        return 'Missing hostname'

    # Bare IPv4 hosts contain dots and pass this check
    if require_tld and '.' not in hostname:
        return 'Hostname missing TLD'

    if CONTROL_CHARS.search(url):
        return 'URL contains control characters'

    if '//' in parsed.path:
        return 'Path contains double slashes'

    return None


def execute(urls, config: dict, context: dict):
    log = context_logger(context)
    urls = as_candidates(urls)
    max_length = int(config.get('max_url_length') or DEFAULT_MAX_LENGTH)
    protocols = config.get('allowed_protocols') or DEFAULT_PROTOCOLS
    require_tld = config.get('require_tld') is not False

    def check(item):
        error = validate_url(item.url, max_length, protocols, require_tld)
        if error:
            log.info(f"[url-format] Invalid: {item.url} - {error}")
        return error

    valid, invalid = partition(urls, check, REASON)
    log.info(f"[url-format] Validated {len(urls)} URLs: {len(valid)} valid, {len(invalid)} invalid")
    return validation_result(urls, valid, invalid)


SUBMODULE = ValidationModule(
    id='url-format',
    name='URL Format',
    category='filtering',
    version='1.0.0',
    description='Validate URL format and structure',
    cost='cheap',
    options=[
        OptionSpec('max_url_length', 'number', DEFAULT_MAX_LENGTH, None, 'Maximum URL length allowed'),
        OptionSpec('require_tld', 'boolean', True, [True, False], 'Require top-level domain'),
        OptionSpec('allowed_protocols', 'array', DEFAULT_PROTOCOLS, None, 'Accepted URL schemes'),
    ],
    execute=execute,
)
