"""
Link extraction for discovery: resolve, scope and filter anchors on a page.
"""

from __future__ import annotations

from urllib.parse import urljoin, urlparse, urldefrag

from bs4 import BeautifulSoup

from .config import SKIP_EXTENSIONS


# CSS selectors per page area
NAV_SELECTORS = {
    'header': [
        'header a', 'nav a', '[role="navigation"] a', '.navbar a',
        '.main-nav a', '#header a', '.header a',
    ],
    'footer': ['footer a', '#footer a', '.footer a', '.site-footer a'],
    'sidebar': ['aside a', '.sidebar a', '#sidebar a', '[role="complementary"] a'],
}

# Path prefixes that never lead to content
SKIP_PATHS = (
    '/login', '/logout', '/signup', '/register', '/cart', '/checkout',
    '/api/', '/cdn-cgi/', '/wp-admin',
)
NAV_SKIP_PATHS = SKIP_PATHS + ('/search',)
SEED_SKIP_PATHS = SKIP_PATHS + ('/wp-login',)

NAV_SKIP_EXTENSIONS = tuple(ext for ext in SKIP_EXTENSIONS if ext != '.json')
SEED_SKIP_EXTENSIONS = SKIP_EXTENSIONS

IGNORED_HREF_PREFIXES = ('#', 'javascript:', 'mailto:', 'tel:')


def strip_www(host: str) -> str:
    host = (host or '').lower()
    return host[4:] if host.startswith('www.') else host


def is_same_domain(host: str | None, domain: str | None) -> bool:
    """True if host is the domain, a subdomain of it, or a parent of it."""
    if not host or not domain:
        return False
    host, domain = strip_www(host), strip_www(domain)
    return (
        host == domain
        or host.endswith('.' + domain)
        or domain.endswith('.' + host)
    )


def resolve_link(
    href: str | None,
    base_url: str,
    domain: str | None,
    same_domain_only: bool = True,
    skip_paths: tuple = SEED_SKIP_PATHS,
    skip_extensions: tuple = SEED_SKIP_EXTENSIONS,
) -> str | None:
    """
    Resolve an href against its page and apply the discovery filters.

    Returns the absolute URL without fragment, or None if the link is out
    of scope (non-http scheme, off-domain, non-content path or file type).
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.lower().startswith(IGNORED_HREF_PREFIXES):
        return None

    try:
        full_url, _ = urldefrag(urljoin(base_url, href))
        parsed = urlparse(full_url)
    except ValueError:
        return None

    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        return None

    if same_domain_only and not is_same_domain(parsed.hostname, domain):
        return None

    path = parsed.path.lower()
    if path.startswith(skip_paths):
        return None
    if path.endswith(skip_extensions):
        return None

    return full_url


def extract_links(
    html: str,
    base_url: str,
    domain: str | None,
    same_domain_only: bool = True,
    max_urls: int | None = None,
) -> list[str]:
    """All in-scope anchors on a page, deduped, in document order."""
    soup = BeautifulSoup(html, 'lxml')
    links = []
    seen = set()

    for a in soup.find_all('a', href=True):
        if max_urls is not None and len(links) >= max_urls:
            break
        url = resolve_link(a['href'], base_url, domain, same_domain_only)
        if url and url not in seen:
            seen.add(url)
            links.append(url)

    return links


def extract_nav_links(
    html: str,
    base_url: str,
    domain: str | None,
    areas: list[str] | tuple = ('header', 'footer'),
    max_urls: int | None = None,
) -> list[tuple[str, str]]:
    """
    Links found in the navigation areas of a page.

    Returns (url, area) pairs; a URL is attributed to the first area that
    yields it.
    """
    soup = BeautifulSoup(html, 'lxml')
    found = []
    seen = set()

    for area in areas:
        for selector in NAV_SELECTORS.get(area, []):
            for a in soup.select(selector):
                if max_urls is not None and len(found) >= max_urls:
                    return found
                url = resolve_link(
                    a.get('href'),
                    base_url,
                    domain,
                    skip_paths=NAV_SKIP_PATHS,
                    skip_extensions=NAV_SKIP_EXTENSIONS,
                )
                if url and url not in seen:
                    seen.add(url)
                    found.append((url, area))

    return found
