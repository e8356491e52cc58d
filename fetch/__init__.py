"""
Fetch-with-fallback engine.

Primary interface:
    from fetch import Fetcher

    fetcher = Fetcher()
    result = fetcher.fetch("https://example.com")

    # Returns FetchResult with:
    # - url, final_url, status
    # - content (HTML text) and raw (direct-response bytes)
    # - used_browser, block_signals, error
"""

from .access_classifier import detect_block
from .browser import BrowserSession, install_shutdown_hooks
from .config import FetchConfig, FetchResult
from .fetcher import Fetcher, fetch_requests
from .links import extract_links, extract_nav_links, is_same_domain, resolve_link
from .sitemap import SitemapResult, SitemapURL, discover_sitemap, parse_sitemap


__all__ = [
    'Fetcher',
    'FetchConfig',
    'FetchResult',
    'BrowserSession',
    'install_shutdown_hooks',
    'fetch_requests',
    'detect_block',
    'extract_links',
    'extract_nav_links',
    'is_same_domain',
    'resolve_link',
    'SitemapResult',
    'SitemapURL',
    'discover_sitemap',
    'parse_sitemap',
]
