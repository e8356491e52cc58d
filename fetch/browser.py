"""
Shared headless browser for the fetch fallback path.

One Chromium process per process, launched lazily on first use. Sync
Playwright objects are bound to the thread that created them, so every
browser call is marshalled onto a single dedicated worker thread; callers
on any thread simply block on the returned future.

Usage:
    from fetch.browser import BrowserSession

    session = BrowserSession()
    result = session.fetch("https://example.com")
    session.close()
"""

from __future__ import annotations

import atexit
import signal
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from loguru import logger

from .config import FetchConfig, FetchResult, BROWSER_HEADERS, BROWSER_LAUNCH_ARGS, USER_AGENTS


class BrowserUnavailable(RuntimeError):
    """Raised when the shared browser cannot be launched."""


class BrowserSession:
    """Lazily launched, process-wide Chromium instance."""

    def __init__(self, config: FetchConfig | None = None):
        self.config = config or FetchConfig()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="browser")
        self._lock = threading.Lock()
        self._launching: Future | None = None  # launch-in-flight marker
        self._playwright = None
        self._browser = None
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _launch(self):
        """Runs on the browser thread."""
        try:
            from playwright.sync_api import sync_playwright
        except ImportError as exc:
            raise BrowserUnavailable(
                "Playwright not installed. Run: pip install playwright && playwright install chromium"
            ) from exc

        playwright = sync_playwright().start()
        try:
            browser = playwright.chromium.launch(
                headless=self.config.headless,
                args=BROWSER_LAUNCH_ARGS,
            )
        except Exception:
            playwright.stop()
            raise
        self._playwright = playwright
        self._browser = browser
        logger.info("[browser] Launched shared Chromium instance")
        return browser

    def _ensure_browser(self) -> None:
        """Launch once; concurrent callers wait on the in-flight launch."""
        with self._lock:
            if self._closed:
                raise BrowserUnavailable("browser session is closed")
            if self._browser is not None:
                return
            if self._launching is None:
                self._launching = self._executor.submit(self._launch)
            launching = self._launching

        try:
            launching.result()
        except Exception as exc:
            with self._lock:
                if self._launching is launching:
                    self._launching = None  # allow a later retry
            raise BrowserUnavailable(f"browser launch failed: {exc}") from exc

        with self._lock:
            if self._launching is launching:
                self._launching = None

    def close(self) -> None:
        """Close the shared browser. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        def _shutdown():
            try:
                if self._browser is not None:
                    self._browser.close()
                if self._playwright is not None:
                    self._playwright.stop()
            finally:
                self._browser = None
                self._playwright = None

        try:
            self._executor.submit(_shutdown).result(timeout=30)
        except Exception as exc:
            logger.warning(f"[browser] Error while closing browser: {exc}")
        finally:
            self._executor.shutdown(wait=False)
        logger.info("[browser] Shared browser closed")

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def _render(
        self,
        url: str,
        timeout_ms: int,
        wait_for_selector: str | None,
        wait_for_network_idle: bool,
    ) -> FetchResult:
        """Runs on the browser thread. The context is always closed."""
        context = self._browser.new_context(
            user_agent=self.config.user_agent or USER_AGENTS[0],
            viewport=self.config.viewport,
            locale=self.config.locale,
        )
        try:
            page = context.new_page()
            page.set_extra_http_headers(BROWSER_HEADERS)

            response = page.goto(
                url,
                timeout=timeout_ms,
                wait_until='networkidle' if wait_for_network_idle else 'domcontentloaded',
            )

            if wait_for_selector:
                page.wait_for_selector(wait_for_selector, timeout=timeout_ms / 2)

            page.wait_for_timeout(self.config.settle_ms)

            return FetchResult(
                url=url,
                content=page.content(),
                status=response.status if response is not None else 200,
                final_url=page.url,
                used_browser=True,
                content_type='text/html',
            )
        finally:
            context.close()

    def fetch(
        self,
        url: str,
        timeout_ms: int | None = None,
        wait_for_selector: str | None = None,
        wait_for_network_idle: bool = False,
    ) -> FetchResult:
        """
        Render a URL in a fresh isolated browsing context.

        Never raises: launch, navigation and timeout failures come back as
        a FetchResult with `error` set.
        """
        timeout_ms = timeout_ms or self.config.browser_timeout_ms
        try:
            self._ensure_browser()
            future = self._executor.submit(
                self._render, url, timeout_ms, wait_for_selector, wait_for_network_idle,
            )
            return future.result()
        except BrowserUnavailable as exc:
            logger.warning(f"[browser] {exc}")
            return FetchResult(url=url, used_browser=True, error=f"browser_unavailable: {exc}")
        except Exception as exc:
            name = type(exc).__name__
            kind = 'timeout' if 'timeout' in name.lower() or 'timeout' in str(exc).lower() else 'navigation_failed'
            return FetchResult(url=url, used_browser=True, error=f"{kind}: {name}: {str(exc)[:200]}")


def install_shutdown_hooks(session: BrowserSession) -> None:
    """Close the shared browser on interpreter exit and SIGINT/SIGTERM."""
    atexit.register(session.close)

    if threading.current_thread() is not threading.main_thread():
        return

    for signum in (signal.SIGINT, signal.SIGTERM):
        previous = signal.getsignal(signum)

        def _handler(sig, frame, _previous=previous):
            session.close()
            if callable(_previous):
                _previous(sig, frame)
            else:
                raise SystemExit(128 + sig)

        signal.signal(signum, _handler)
