"""
Tests for the path filter.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from submodules.validation.path_filter import SUBMODULE as PATH_FILTER


def _run(urls, config=None, website=None):
    items = [{"url": u, "entity_id": "e1", "entity_website": website} for u in urls]
    return PATH_FILTER.run(items, config or {})


@pytest.mark.parametrize("url", [
    "https://example.com/login",
    "https://example.com/privacy-policy",
    "https://example.com/cart",
    "https://example.com/wp-admin/options.php",
    "https://example.com/files/report.pdf",
    "https://example.com/news?page=2",
    "https://example.com/2024/01/",
    "https://example.com/blog/",
    "https://example.com/tag/trucking",
    "https://example.com/feed/",
    "https://t.co/AbC123",
])
def test_excluded(url):
    result = _run([url])
    assert result.valid == []
    assert result.invalid[0].reason == "filtered_path"
    assert result.invalid[0].details.startswith("Matched exclude pattern")


@pytest.mark.parametrize("url", [
    "https://example.com/blog/my-article",
    "https://example.com/about",
    "https://example.com/services/freight",
    "https://example.com/2024/01/15/fleet-expansion",
    "https://product.co/trailers",
    "https://www.transport.co/fleet",
])
def test_kept(url):
    result = _run([url])
    assert [c.url for c in result.valid] == [url]


class TestOptions:

    def test_include_overrides_exclude(self):
        result = _run(["https://example.com/login"], {"include_patterns": ["/login$"]})
        assert len(result.valid) == 1

    def test_extra_exclude_patterns(self):
        result = _run(["https://example.com/careers/driver"], {"exclude_patterns": ["/careers/"]})
        assert result.invalid[0].details == "Matched exclude pattern: /careers/"

    def test_without_default_catalogue(self):
        result = _run(["https://example.com/login"], {"use_default_excludes": False})
        assert len(result.valid) == 1

    def test_other_domain_filtered(self):
        result = _run(
            ["https://other.com/about", "https://blog.example.com/post", "https://www.example.com/about"],
            website="https://example.com",
        )
        assert [c.url for c in result.valid] == ["https://blog.example.com/post", "https://www.example.com/about"]
        assert result.invalid[0].details.startswith("Different domain")

    def test_other_domain_allowed(self):
        result = _run(["https://other.com/about"], {"same_domain_only": False}, website="example.com")
        assert len(result.valid) == 1

    def test_stats(self):
        result = _run(["https://example.com/login", "https://example.com/about"])
        assert result.stats["filtered_count"] == 1
        assert result.stats["total"] == 2
