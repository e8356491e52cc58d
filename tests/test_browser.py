"""
Tests for fetch/browser.py (shared Chromium session).

Playwright itself is replaced by mocks; only the session's lifecycle,
threading and error mapping are exercised.
"""

import signal
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

pytest.importorskip("playwright.sync_api")

from fetch.browser import BrowserSession, install_shutdown_hooks
from fetch.config import FetchConfig


class FakePlaywright:
    """sync_playwright() stand-in: one playwright, one browser, one reusable context."""

    def __init__(self, launch_delay=0.0, launch_failures=0):
        self.launch_delay = launch_delay
        self.launch_failures = launch_failures
        self.launch_threads = []

        self.page = MagicMock()
        self.page.content.return_value = "<html><body>ok</body></html>"
        self.page.url = "https://acme.test/"
        self.page.goto.return_value = MagicMock(status=200)

        self.context = MagicMock()
        self.context.new_page.return_value = self.page

        self.browser = MagicMock()
        self.browser.new_context.return_value = self.context

        self.playwright = MagicMock()
        self.playwright.chromium.launch.side_effect = self._launch

        self.sync_playwright = MagicMock()
        self.sync_playwright.return_value.start.return_value = self.playwright

    def _launch(self, **kwargs):
        self.launch_threads.append(threading.current_thread().name)
        time.sleep(self.launch_delay)
        if self.launch_failures:
            self.launch_failures -= 1
            raise RuntimeError("Executable doesn't exist")
        return self.browser

    @property
    def launches(self) -> int:
        return self.playwright.chromium.launch.call_count


@pytest.fixture
def fake():
    fake = FakePlaywright()
    with patch("playwright.sync_api.sync_playwright", fake.sync_playwright):
        yield fake


@pytest.fixture
def session():
    session = BrowserSession(FetchConfig(settle_ms=0))
    yield session
    session.close()


# =============================================================================
# Rendering
# =============================================================================

class TestFetch:

    def test_renders_in_a_fresh_context(self, fake, session):
        result = session.fetch("https://acme.test/")

        assert result.ok
        assert result.used_browser is True
        assert result.status == 200
        assert result.content == "<html><body>ok</body></html>"
        assert result.final_url == "https://acme.test/"
        assert session.is_running
        fake.context.close.assert_called_once()

    def test_navigation_waits(self, fake, session):
        session.fetch("https://acme.test/", timeout_ms=10000, wait_for_selector="main", wait_for_network_idle=True)

        _, kwargs = fake.page.goto.call_args
        assert kwargs == {"timeout": 10000, "wait_until": "networkidle"}
        fake.page.wait_for_selector.assert_called_once_with("main", timeout=5000)

    def test_timeout_closes_context(self, fake, session):
        fake.page.goto.side_effect = TimeoutError("Timeout 30000ms exceeded")

        result = session.fetch("https://acme.test/slow")

        assert not result.ok
        assert result.error.startswith("timeout: TimeoutError")
        fake.context.close.assert_called_once()

    def test_navigation_failure_closes_context(self, fake, session):
        fake.page.wait_for_selector.side_effect = RuntimeError("net::ERR_CONNECTION_RESET")

        result = session.fetch("https://acme.test/", wait_for_selector="#app")

        assert result.error == "navigation_failed: RuntimeError: net::ERR_CONNECTION_RESET"
        assert result.content is None
        fake.context.close.assert_called_once()


# =============================================================================
# Lifecycle
# =============================================================================

class TestLaunch:

    def test_concurrent_fetches_launch_once(self, fake, session):
        fake.launch_delay = 0.2
        urls = [f"https://acme.test/{i}" for i in range(8)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(session.fetch, urls))

        assert fake.launches == 1
        assert all(r.ok for r in results)
        assert fake.context.close.call_count == len(urls)
        # Playwright objects live on the session's own thread
        assert fake.launch_threads[0].startswith("browser")

    def test_failed_launch_can_be_retried(self, fake, session):
        fake.launch_failures = 1

        first = session.fetch("https://acme.test/")
        assert first.error.startswith("browser_unavailable: browser launch failed")
        assert not session.is_running
        fake.playwright.stop.assert_called_once()

        second = session.fetch("https://acme.test/")
        assert second.ok
        assert fake.launches == 2

    def test_close_is_idempotent(self, fake, session):
        session.fetch("https://acme.test/")

        session.close()
        session.close()

        fake.browser.close.assert_called_once()
        fake.playwright.stop.assert_called_once()
        assert not session.is_running

    def test_fetch_after_close(self, fake, session):
        session.close()

        result = session.fetch("https://acme.test/")

        assert result.error == "browser_unavailable: browser session is closed"
        assert fake.launches == 0

    def test_close_without_launch(self, fake, session):
        session.close()
        fake.browser.close.assert_not_called()


def test_shutdown_hooks_close_session():
    session = MagicMock()
    with patch("fetch.browser.atexit.register") as register, \
            patch("fetch.browser.signal.getsignal", return_value=signal.SIG_DFL), \
            patch("fetch.browser.signal.signal") as set_handler:
        install_shutdown_hooks(session)

    register.assert_called_once_with(session.close)
    assert [c.args[0] for c in set_handler.call_args_list] == [signal.SIGINT, signal.SIGTERM]

    handler = set_handler.call_args_list[1].args[1]
    with pytest.raises(SystemExit):
        handler(signal.SIGTERM, None)
    session.close.assert_called_once()
