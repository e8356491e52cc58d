"""
Tests for the content type filter.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fakes import FakeFetcher
from submodules.validation.content_type import SUBMODULE as CONTENT_TYPE, extension_kind, is_html_content_type


def test_extension_kind():
    assert extension_kind("https://acme.test/brochure.PDF") == ("document", ".pdf")
    assert extension_kind("https://acme.test/logo.svg?v=2") == ("image", ".svg")
    assert extension_kind("https://acme.test/about") is None
    assert extension_kind("https://acme.test/index.html") is None
    assert extension_kind("https://acme.test/brochure.pdf", {".pdf"}) is None


def test_is_html_content_type():
    assert is_html_content_type("text/html; charset=utf-8")
    assert is_html_content_type("application/xhtml+xml")
    assert is_html_content_type("")
    assert not is_html_content_type("application/pdf")


def test_extension_rejection():
    urls = [{"url": u} for u in ("https://acme.test/a", "https://acme.test/b.mp4", "https://acme.test/c.zip")]
    result = CONTENT_TYPE.run(urls, {})
    assert [c.url for c in result.valid] == ["https://acme.test/a"]
    assert [r.reason for r in result.invalid] == ["non_html_content", "non_html_content"]
    assert result.invalid[0].details == "Non-HTML media extension: .mp4"
    assert result.stats["non_html_count"] == 2
    assert result.stats["headers_checked"] == 0


def test_allowed_extensions():
    result = CONTENT_TYPE.run([{"url": "https://acme.test/b.pdf"}], {"allowed_extensions": ["pdf"]})
    assert len(result.valid) == 1


def test_header_check():
    fetcher = FakeFetcher(head_types={
        "https://acme.test/page": "text/html; charset=utf-8",
        "https://acme.test/download": "application/octet-stream",
    })
    urls = [{"url": u} for u in (
        "https://acme.test/page",
        "https://acme.test/download",
        "https://acme.test/unreachable",
        "https://acme.test/skip.png",
    )]
    result = CONTENT_TYPE.run(urls, {"check_headers": True}, {"fetcher": fetcher})

    assert [c.url for c in result.valid] == ["https://acme.test/page", "https://acme.test/unreachable"]
    assert [r.details for r in result.invalid] == [
        "Content-Type: application/octet-stream",
        "Non-HTML image extension: .png",
    ]
    # Extension hits are decided without a request
    assert "https://acme.test/skip.png" not in fetcher.urls_requested("HEAD")
    assert result.stats["headers_checked"] == 3
