"""
Tests for language deduplication.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from submodules.validation.lang_dedup import SUBMODULE as LANG_DEDUP, language_and_slug


def _urls(*paths, entity_id="e1"):
    return [{"url": f"https://acme.test{p}", "entity_id": entity_id} for p in paths]


def test_language_and_slug():
    assert language_and_slug("https://acme.test/en-US/news/Post/") == ("en", "/news/post")
    assert language_and_slug("https://acme.test/de/a") == ("de", "/a")
    assert language_and_slug("https://acme.test/news/post") == (None, "/news/post")


def test_preference_picks_canonical():
    result = LANG_DEDUP.run(_urls("/en/a", "/de/a", "/fr/a"), {"language_preference": ["de", "en"]})

    assert [c.url for c in result.valid] == ["https://acme.test/de/a"]
    assert [r.url for r in result.invalid] == ["https://acme.test/en/a", "https://acme.test/fr/a"]
    for rejected in result.invalid:
        assert rejected.reason == "language_duplicate"
        assert rejected.candidate.metadata["canonical_url"] == "https://acme.test/de/a"
    assert result.stats["translations_filtered"] == 2


def test_single_member_kept_unconditionally():
    result = LANG_DEDUP.run(_urls("/fr/a"), {"language_preference": ["de", "en"]})
    assert [c.url for c in result.valid] == ["https://acme.test/fr/a"]
    assert result.invalid == []


def test_first_found_fallback():
    result = LANG_DEDUP.run(_urls("/fr/a", "/it/a"), {"language_preference": ["ja"]})
    assert [c.url for c in result.valid] == ["https://acme.test/fr/a"]


def test_alphabetical_fallback():
    result = LANG_DEDUP.run(_urls("/fr/a", "/it/a", "/de/a"), {"language_preference": ["ja"], "fallback": "alphabetical"})
    assert [c.url for c in result.valid] == ["https://acme.test/de/a"]


def test_groups_are_per_entity():
    urls = _urls("/en/a", entity_id="e1") + _urls("/de/a", entity_id="e2")
    result = LANG_DEDUP.run(urls, {})
    assert len(result.valid) == 2


def test_unprefixed_url_groups_with_translations():
    result = LANG_DEDUP.run(_urls("/a", "/en/a"), {})
    assert [c.url for c in result.valid] == ["https://acme.test/en/a"]
    assert [r.url for r in result.invalid] == ["https://acme.test/a"]


def test_partition_conserves_input():
    urls = _urls("/en/a", "/de/a", "/en/b", "/fr/c", "/fr/a", "/d")
    result = LANG_DEDUP.run(urls, {})
    assert len(result.valid) + len(result.invalid) == len(urls)
