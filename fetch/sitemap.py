"""
Sitemap discovery and parsing for URL discovery.

Supports:
- Standard sitemap.xml
- Sitemap index files (child sitemaps fetched in parallel)
- Gzipped sitemaps (.gz)
- Common alternate locations
- Extraction of lastmod, changefreq, priority

All requests go through the fetcher's direct path; sitemaps are never
rendered in the browser.

Usage:
    from fetch.fetcher import Fetcher
    from fetch.sitemap import discover_sitemap, parse_sitemap

    fetcher = Fetcher()
    found = discover_sitemap("example.com", fetcher)
    if found.found:
        result = parse_sitemap(found.sitemap_url, fetcher, content=found.content)
"""

from __future__ import annotations

import gzip
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator

from loguru import logger

from .fetcher import Fetcher


# Sitemap locations probed in order
SITEMAP_PATHS = [
    '/sitemap.xml',
    '/sitemap_index.xml',
    '/sitemap/sitemap.xml',
]

# XML namespaces
SITEMAP_NS = {
    'sm': 'http://www.sitemaps.org/schemas/sitemap/0.9',
    'xhtml': 'http://www.w3.org/1999/xhtml',
}

GZIP_MAGIC = b'\x1f\x8b'


@dataclass
class SitemapURL:
    """A URL entry from a sitemap."""
    loc: str
    lastmod: str | None = None
    changefreq: str | None = None
    priority: float | None = None
    source_sitemap: str = ''


@dataclass
class SitemapResult:
    """Result of sitemap discovery and parsing."""
    found: bool = False
    sitemap_url: str = ''
    is_index: bool = False
    urls: list[SitemapURL] = field(default_factory=list)
    child_sitemaps: list[str] = field(default_factory=list)
    content: str | None = None
    error: str | None = None
    timed_out: bool = False
    fetch_time: str = ''


def _decode(url: str, raw: bytes | None, text: str | None) -> str | None:
    """Body as text, gunzipping .gz payloads."""
    if raw and (url.lower().endswith('.gz') or raw[:2] == GZIP_MAGIC):
        try:
            return gzip.decompress(raw).decode('utf-8', errors='replace')
        except (OSError, EOFError) as e:
            # requests may already have undone a Content-Encoding: gzip
            if raw[:2] == GZIP_MAGIC:
                logger.warning(f"[sitemap] Failed to decompress {url}: {e}")
                return None
    return text


def _get(url: str, fetcher: Fetcher) -> tuple[str | None, int, bool]:
    """Fetch URL, return (content, status_code, timed_out)."""
    result = fetcher.direct(url)
    if result.error:
        return None, 0, result.timed_out
    if result.status != 200:
        return None, result.status or 0, False
    return _decode(url, result.raw, result.content), result.status, False


def _looks_like_sitemap(content: str) -> bool:
    """Quick check if content looks like a sitemap XML."""
    content_start = content[:1000].lower()
    return 'urlset' in content_start or 'sitemapindex' in content_start


def discover_sitemap(domain: str, fetcher: Fetcher) -> SitemapResult:
    """
    Probe the well-known sitemap locations of a domain.

    Args:
        domain: Bare hostname (e.g., "example.com")
        fetcher: Shared fetcher (direct path only)

    Returns:
        SitemapResult with `found`, `sitemap_url` and the fetched `content`;
        `timed_out` is set when a probe timed out and nothing was found.
    """
    result = SitemapResult(fetch_time=datetime.now(timezone.utc).isoformat())

    for path in SITEMAP_PATHS:
        url = f"https://{domain}{path}"
        content, status, timed_out = _get(url, fetcher)
        result.timed_out = result.timed_out or timed_out
        if content and _looks_like_sitemap(content):
            result.found = True
            result.sitemap_url = url
            result.content = content
            result.timed_out = False
            return result

    result.error = f"No sitemap found for {domain}"
    return result


def _parse_datetime(date_str: str | None) -> str | None:
    """Parse various date formats to ISO string."""
    if not date_str:
        return None

    # Try common formats
    formats = [
        '%Y-%m-%dT%H:%M:%S%z',
        '%Y-%m-%dT%H:%M:%S.%f%z',
        '%Y-%m-%dT%H:%M:%S',
        '%Y-%m-%d',
    ]

    date_str = date_str.strip()

    for fmt in formats:
        try:
            dt = datetime.strptime(date_str, fmt)
            return dt.isoformat()
        except ValueError:
            continue

    # Return as-is if can't parse
    return date_str


def parse_sitemap(
    sitemap_url: str,
    fetcher: Fetcher,
    follow_index: bool = True,
    max_urls: int = 500,
    content: str | None = None,
    max_workers: int = 5,
) -> SitemapResult:
    """
    Parse a sitemap and extract URLs.

    Args:
        sitemap_url: URL of the sitemap
        fetcher: Shared fetcher (direct path only)
        follow_index: If True, fetch child sitemaps of an index
        max_urls: Maximum URLs to return
        content: Already-fetched body (skips the request)
        max_workers: Parallel child sitemap fetches

    Returns:
        SitemapResult with URLs in document order (index order for
        children). `error` starts with "fetch" or "parse".
    """
    result = SitemapResult(
        fetch_time=datetime.now(timezone.utc).isoformat(),
        sitemap_url=sitemap_url,
    )

    if content is None:
        content, status, timed_out = _get(sitemap_url, fetcher)
        if not content:
            result.timed_out = timed_out
            result.error = f"fetch: failed to fetch sitemap (status {status})"
            return result

    try:
        root = ET.fromstring(content.strip())
    except ET.ParseError as e:
        result.error = f"parse: XML parse error: {e}"
        return result

    result.found = True
    result.content = content

    # Check if this is a sitemap index
    if root.tag.endswith('sitemapindex'):
        result.is_index = True
        result.child_sitemaps = _parse_sitemap_index(root)

        if follow_index and result.child_sitemaps:
            def _child(child_url: str) -> list[SitemapURL]:
                child = parse_sitemap(
                    child_url,
                    fetcher,
                    follow_index=False,  # Don't recurse further
                    max_urls=max_urls,
                )
                if child.error:
                    logger.warning(f"[sitemap] Skipping child sitemap {child_url}: {child.error}")
                return child.urls

            workers = max(1, min(max_workers, len(result.child_sitemaps)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                for child_urls in executor.map(_child, result.child_sitemaps):
                    result.urls.extend(child_urls)
            del result.urls[max_urls:]
    elif root.tag.endswith('urlset'):
        result.urls = list(_parse_urlset(root, sitemap_url, max_urls))
    else:
        result.error = f"parse: unexpected root element <{root.tag}>"

    return result


def _parse_sitemap_index(root: ET.Element) -> list[str]:
    """Parse sitemap index and return child sitemap URLs."""
    child_urls = []

    # Try with namespace
    for sitemap in root.findall('sm:sitemap', SITEMAP_NS):
        loc = sitemap.find('sm:loc', SITEMAP_NS)
        if loc is not None and loc.text:
            child_urls.append(loc.text.strip())

    # Try bare tags (no namespace)
    if not child_urls:
        for sitemap in root.findall('.//sitemap'):
            loc = sitemap.find('loc')
            if loc is not None and loc.text:
                child_urls.append(loc.text.strip())

    return child_urls


def _parse_urlset(
    root: ET.Element,
    source_sitemap: str,
    max_urls: int,
) -> Iterator[SitemapURL]:
    """Parse urlset and yield SitemapURL objects."""
    count = 0

    urls = root.findall('sm:url', SITEMAP_NS)
    if not urls:
        urls = root.findall('.//url')

    for url_elem in urls:
        if count >= max_urls:
            break

        loc = _get_text(url_elem, ['sm:loc', 'loc'])
        if not loc:
            continue

        lastmod = _get_text(url_elem, ['sm:lastmod', 'lastmod'])
        changefreq = _get_text(url_elem, ['sm:changefreq', 'changefreq'])
        priority_str = _get_text(url_elem, ['sm:priority', 'priority'])

        priority = None
        if priority_str:
            try:
                priority = float(priority_str)
            except ValueError:
                pass

        yield SitemapURL(
            loc=loc,
            lastmod=_parse_datetime(lastmod),
            changefreq=changefreq,
            priority=priority,
            source_sitemap=source_sitemap,
        )
        count += 1


def _get_text(elem: ET.Element, tags: list[str]) -> str | None:
    """Get text from first matching child tag."""
    for tag in tags:
        child = elem.find(tag, SITEMAP_NS) if ':' in tag else elem.find(tag)
        if child is not None and child.text:
            return child.text.strip()
    return None
