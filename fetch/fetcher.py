"""
Fetch layer with fallback chain:
requests → shared headless browser (only when blocked or failing)
"""

from __future__ import annotations

import random

import requests
from loguru import logger

from .access_classifier import detect_block
from .browser import BrowserSession
from .config import FetchConfig, FetchResult, USER_AGENTS, DEFAULT_HEADERS


def get_user_agent(config: FetchConfig) -> str:
    """Get user agent string (fixed or rotated)."""
    if config.user_agent:
        return config.user_agent
    if config.rotate_user_agent:
        return random.choice(USER_AGENTS)
    return USER_AGENTS[0]


def fetch_requests(
    url: str,
    config: FetchConfig,
    session: requests.Session | None = None,
    method: str = 'GET',
) -> FetchResult:
    """
    Fetch URL using requests library.

    Non-2xx responses are returned as-is (with status); only transport
    errors produce a result with `error` set.
    """
    headers = DEFAULT_HEADERS.copy()
    headers['User-Agent'] = get_user_agent(config)
    http = session or requests

    try:
        resp = http.request(
            method,
            url,
            headers=headers,
            timeout=config.simple_timeout,
            allow_redirects=True,
        )
    except requests.Timeout as e:
        return FetchResult(url=url, error=f"timeout: {type(e).__name__}")
    except requests.RequestException as e:
        return FetchResult(url=url, error=f"request_error: {type(e).__name__}: {str(e)[:200]}")

    content_type = resp.headers.get('Content-Type', '').lower()
    return FetchResult(
        url=url,
        content=resp.text if method != 'HEAD' else '',
        raw=resp.content if method != 'HEAD' else None,
        status=resp.status_code,
        final_url=resp.url,
        content_type=content_type,
    )


class Fetcher:
    """
    Resolve URLs to HTML: cheap direct request first, browser when blocked.

    One instance is shared by every submodule in the process; it owns the
    browser session.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        browser: BrowserSession | None = None,
        session: requests.Session | None = None,
    ):
        self.config = config or FetchConfig()
        self._browser = browser
        self._session = session

    @property
    def browser(self) -> BrowserSession:
        if self._browser is None:
            self._browser = BrowserSession(self.config)
        return self._browser

    def direct(self, url: str, method: str = 'GET') -> FetchResult:
        """Direct request only (no block detection, no fallback)."""
        return fetch_requests(url, self.config, session=self._session, method=method)

    def fetch(
        self,
        url: str,
        allow_browser: bool = True,
        wait_for_selector: str | None = None,
        wait_for_network_idle: bool = False,
    ) -> FetchResult:
        """
        Fetch HTML with fallback chain.

        Tries: requests → browser (once, on block signal or transport error)

        Returns:
            FetchResult; `content` is None when every path failed.
        """
        result = self.direct(url)

        if result.error:
            reason = result.error
        else:
            result.block_signals = detect_block(result.status, result.content)
            if not result.block_signals:
                return result
            reason = ', '.join(result.block_signals)

        if not (allow_browser and self.config.browser_fallback):
            return result

        logger.info(f"[fetch] Direct fetch unusable for {url} ({reason}), falling back to browser")
        browser_result = self.browser.fetch(
            url,
            timeout_ms=self.config.browser_timeout_ms,
            wait_for_selector=wait_for_selector,
            wait_for_network_idle=wait_for_network_idle,
        )
        browser_result.block_signals = result.block_signals
        if browser_result.error:
            logger.warning(f"[fetch] Browser fallback failed for {url}: {browser_result.error}")
        return browser_result

    def close(self) -> None:
        if self._browser is not None:
            self._browser.close()
