"""
Content type filter: reject URLs that point at non-document resources.

Decides from the path extension first; optionally confirms with a HEAD
request and the response Content-Type.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from urllib.parse import urlparse

from ..base import (
    OptionSpec,
    ValidationModule,
    as_candidates,
    context_fetcher,
    context_logger,
    int_option,
    partition,
    validation_result,
)


REASON = 'non_html_content'

NON_HTML_EXTENSIONS = {
    'image': ('.jpg', '.jpeg', '.png', '.gif', '.svg', '.webp', '.ico', '.bmp', '.tif', '.tiff', '.avif'),
    'media': ('.mp3', '.mp4', '.wav', '.avi', '.mov', '.webm', '.ogg', '.m4a', '.mkv'),
    'archive': ('.zip', '.rar', '.gz', '.tgz', '.7z', '.tar', '.dmg', '.exe', '.msi'),
    'document': ('.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx', '.csv', '.odt', '.rtf'),
    'asset': ('.css', '.js', '.mjs', '.json', '.map', '.woff', '.woff2', '.ttf', '.eot'),
    'feed': ('.xml', '.rss', '.atom'),
}

HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')

DEFAULT_HEAD_WORKERS = 8


def extension_kind(url: str, allowed_extensions: set[str] | None = None) -> tuple[str, str] | None:
    """(kind, extension) for a non-document URL path, else None."""
    try:
        path = urlparse(url or '').path.lower()
    except ValueError:
        return None
    allowed = allowed_extensions or set()
    for kind, extensions in NON_HTML_EXTENSIONS.items():
        for ext in extensions:
            if path.endswith(ext) and ext not in allowed:
                return kind, ext
    return None


def is_html_content_type(content_type: str) -> bool:
    return not content_type or content_type.split(';')[0].strip() in HTML_CONTENT_TYPES


def _normalize_extensions(values) -> set[str]:
    return {v.lower() if v.startswith('.') else f".{v.lower()}" for v in values or [] if v}


def execute(urls, config: dict, context: dict):
    log = context_logger(context)
    urls = as_candidates(urls)
    allowed = _normalize_extensions(config.get('allowed_extensions'))
    check_headers = config.get('check_headers') is True

    header_types: dict[str, str] = {}
    if check_headers:
        fetcher = context_fetcher(context)
        pending = [
            item.url for item in urls
            if isinstance(item.url, str) and extension_kind(item.url, allowed) is None
        ]
        pending = list(dict.fromkeys(pending))

        def _head(url: str) -> str:
            result = fetcher.direct(url, method='HEAD')
            if result.error:
                log.debug(f"[content-type] HEAD failed for {url}: {result.error}")
                return ''
            return result.content_type

        if pending:
            workers = min(int_option(config, 'concurrency', DEFAULT_HEAD_WORKERS), len(pending))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                header_types = dict(zip(pending, executor.map(_head, pending)))

    def check(item):
        hit = extension_kind(item.url, allowed)
        if hit:
            kind, ext = hit
            return f"Non-HTML {kind} extension: {ext}"
        content_type = header_types.get(item.url, '')
        if not is_html_content_type(content_type):
            return f"Content-Type: {content_type.split(';')[0].strip()}"
        return None

    valid, invalid = partition(urls, check, REASON)
    log.info(f"[content-type] Processed {len(urls)} URLs: {len(valid)} kept, {len(invalid)} non-HTML")
    return validation_result(
        urls, valid, invalid,
        non_html_count=len(invalid),
        headers_checked=len(header_types),
    )


SUBMODULE = ValidationModule(
    id='content-type',
    name='Content Type',
    category='filtering',
    version='1.0.0',
    description='Remove links to images, media, documents and other non-HTML resources',
    cost='cheap',
    options=[
        OptionSpec('allowed_extensions', 'array', [], None, 'Extensions to keep even though they are not HTML'),
        OptionSpec('check_headers', 'boolean', False, [True, False], 'Confirm with a HEAD request (network)'),
        OptionSpec('concurrency', 'number', DEFAULT_HEAD_WORKERS, None, 'Parallel HEAD requests'),
    ],
    execute=execute,
)
