"""
Tests for fetch/fetcher.py (direct request first, browser once when blocked).
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import requests

from fetch.config import FetchConfig, FetchResult
from fetch.fetcher import Fetcher


def _response(status: int, text: str, url: str = "https://acme.test/") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.content = text.encode("utf-8")
    resp.url = url
    resp.headers = {"Content-Type": "text/html; charset=utf-8"}
    return resp


def _browser(html: str = "<html><body>rendered</body></html>") -> MagicMock:
    browser = MagicMock()
    browser.fetch.return_value = FetchResult(
        url="https://acme.test/",
        content=html,
        status=200,
        final_url="https://acme.test/",
        used_browser=True,
    )
    return browser


class TestFallback:

    def test_403_captcha_uses_browser_once(self):
        session = MagicMock()
        session.request.return_value = _response(403, "<html>captcha required</html>")
        browser = _browser()

        result = Fetcher(FetchConfig(), browser=browser, session=session).fetch("https://acme.test/")

        assert browser.fetch.call_count == 1
        assert result.used_browser is True
        assert result.content == "<html><body>rendered</body></html>"
        assert "status_403" in result.block_signals
        assert "marker:captcha" in result.block_signals

    def test_clean_page_skips_browser(self):
        session = MagicMock()
        session.request.return_value = _response(200, "<html><body>" + "content " * 300 + "</body></html>")
        browser = _browser()

        result = Fetcher(FetchConfig(), browser=browser, session=session).fetch("https://acme.test/")

        browser.fetch.assert_not_called()
        assert result.used_browser is False
        assert result.status == 200
        assert result.ok

    def test_transport_error_uses_browser(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        browser = _browser()

        result = Fetcher(FetchConfig(), browser=browser, session=session).fetch("https://acme.test/")

        assert browser.fetch.call_count == 1
        assert result.used_browser is True

    def test_timeout_is_reported(self):
        session = MagicMock()
        session.request.side_effect = requests.Timeout("slow")

        result = Fetcher(FetchConfig(browser_fallback=False), session=session).fetch("https://acme.test/")

        assert result.error.startswith("timeout")
        assert result.timed_out
        assert not result.ok

    def test_fallback_disabled_returns_blocked_response(self):
        session = MagicMock()
        session.request.return_value = _response(403, "<html>captcha</html>")
        browser = _browser()

        result = Fetcher(FetchConfig(browser_fallback=False), browser=browser, session=session).fetch("https://acme.test/")

        browser.fetch.assert_not_called()
        assert result.status == 403
        assert result.used_browser is False

    def test_browser_failure_comes_back_as_error(self):
        session = MagicMock()
        session.request.return_value = _response(503, "<html>ddos protection</html>")
        browser = MagicMock()
        browser.fetch.return_value = FetchResult(
            url="https://acme.test/", used_browser=True, error="timeout: TimeoutError: 30000ms",
        )

        fetcher = Fetcher(FetchConfig(), browser=browser, session=session)
        result = fetcher.fetch("https://acme.test/")
        assert not result.ok
        assert result.content is None
        assert result.error.startswith("timeout")


class TestDirect:

    def test_head_request(self):
        session = MagicMock()
        session.request.return_value = _response(200, "")

        result = Fetcher(FetchConfig(), session=session).direct("https://acme.test/a.pdf", method="HEAD")

        args, kwargs = session.request.call_args
        assert args[0] == "HEAD"
        assert kwargs["timeout"] == 15.0
        assert result.content_type.startswith("text/html")
        assert result.raw is None
