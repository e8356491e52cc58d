"""
Tests for URL normalization and the dedupe submodule.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from submodules.validation.dedupe import SUBMODULE as DEDUPE, normalize_url


SAMPLES = [
    "https://Example.com/About/",
    "https://example.com",
    "https://example.com//",
    "HTTPS://WWW.Example.com/a/index.html?utm_source=x&b=2&a=1#top",
    "https://example.com/search?q=a+b&ref=home&q=c",
    "https://example.com/p?empty=&x=%20y",
    "https://example.com/a?ID=X",
    "https://www.www.example.com/docs/index.html/index.php",
    "mailto:someone@example.com",
    "not a url",
    "",
]


@pytest.mark.parametrize("url", SAMPLES)
@pytest.mark.parametrize("fuzzy", [False, True])
def test_normalize_is_idempotent(url, fuzzy):
    once = normalize_url(url, fuzzy=fuzzy)
    assert normalize_url(once, fuzzy=fuzzy) == once


class TestNormalize:

    def test_strict(self):
        assert normalize_url("https://Example.com/About/") == "https://example.com/About"
        assert normalize_url("https://example.com") == "https://example.com/"
        assert normalize_url("https://example.com/a?utm_source=x&b=2&a=1&fbclid=z") == "https://example.com/a?a=1&b=2"

    def test_fuzzy(self):
        assert normalize_url("http://www.Example.com/About/index.html#team", fuzzy=True) == "//example.com/about"
        assert normalize_url("https://example.com/about", fuzzy=True) == "//example.com/about"

    def test_fuzzy_keeps_query_case(self):
        once = normalize_url("https://Example.com/A?ID=X", fuzzy=True)
        assert once == "//example.com/a?ID=X"
        assert normalize_url(once, fuzzy=True) == once


class TestDedupe:

    def test_first_occurrence_wins_within_entity(self):
        urls = [
            {"url": "https://example.com/a", "entity_id": "e1", "discovery_method": "sitemap"},
            {"url": "https://example.com/a/", "entity_id": "e1", "discovery_method": "navigation"},
            {"url": "https://example.com/a", "entity_id": "e2", "discovery_method": "sitemap"},
        ]
        result = DEDUPE.run(urls, {})

        assert [(c.url, c.entity_id) for c in result.valid] == [
            ("https://example.com/a", "e1"),
            ("https://example.com/a", "e2"),
        ]
        rejected = result.invalid[0]
        assert rejected.reason == "duplicate"
        assert rejected.details == "Duplicate of https://example.com/a discovered via sitemap"
        assert result.stats["duplicate_count"] == 1

    def test_across_entities(self):
        urls = [
            {"url": "https://example.com/a", "entity_id": "e1"},
            {"url": "https://example.com/a", "entity_id": "e2"},
        ]
        result = DEDUPE.run(urls, {"dedupe_across_entities": True})
        assert len(result.valid) == 1
        assert len(result.invalid) == 1

    def test_preferred_method_is_kept(self):
        urls = [
            {"url": "https://example.com/a", "entity_id": "e1", "discovery_method": "seed-expansion"},
            {"url": "https://example.com/a", "entity_id": "e1", "discovery_method": "sitemap"},
        ]
        result = DEDUPE.run(urls, {"prefer_discovery_method": "sitemap"})
        assert result.valid[0].discovery_method == "sitemap"
        assert result.invalid[0].candidate.discovery_method == "seed-expansion"

    def test_fuzzy_mode(self):
        urls = [
            {"url": "https://www.example.com/About", "entity_id": "e1"},
            {"url": "http://example.com/about/", "entity_id": "e1"},
        ]
        assert len(DEDUPE.run(urls, {}).valid) == 2
        assert len(DEDUPE.run(urls, {"match_mode": "fuzzy"}).valid) == 1

    def test_partition_conserves_input(self):
        urls = [{"url": f"https://example.com/{i % 3}", "entity_id": "e1"} for i in range(10)]
        result = DEDUPE.run(urls, {})
        assert len(result.valid) + len(result.invalid) == 10
        assert len(result.valid) == 3
