"""
Tests for URL format validation.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from submodules.validation.url_format import SUBMODULE as URL_FORMAT, validate_url


class TestValidateUrl:

    def test_accepts_plain_urls(self):
        assert validate_url("https://example.com/a?b=1") is None
        assert validate_url("http://sub.example.co.uk/") is None

    def test_accepts_bare_ipv4(self):
        assert validate_url("http://192.168.0.1/status") is None

    def test_rejects_empty_and_non_strings(self):
        assert validate_url("") == "URL is empty or not a string"
        assert validate_url("   ") == "URL is empty or not a string"
        assert validate_url(None) == "URL is empty or not a string"

    def test_rejects_unparseable(self):
        assert validate_url("not a url") == "Invalid URL syntax"
        assert validate_url("https://example.com:99999/") == "Invalid URL syntax"

    def test_rejects_protocol(self):
        assert validate_url("ftp://example.com/file").startswith("Protocol ftp")
        assert validate_url("ftp://example.com/file", allowed_protocols=["ftp"]) is None

    def test_rejects_missing_tld(self):
        assert validate_url("https://localhost/x") == "Hostname missing TLD"
        assert validate_url("https://localhost/x", require_tld=False) is None

    def test_rejects_long(self):
        assert "max length" in validate_url("https://example.com/" + "a" * 100, max_url_length=50)

    def test_rejects_control_characters(self):
        assert validate_url("https://example.com/a\tb") == "URL contains control characters"


class TestUrlFormatSubmodule:

    def test_partition_keeps_every_input(self):
        urls = [
            {"url": "https://example.com/ok", "entity_id": "e1"},
            {"url": "ftp://example.com/no", "entity_id": "e1"},
            {"url": "", "entity_id": "e1"},
            {"url": "https://example.com/also-ok", "entity_id": "e2"},
        ]
        result = URL_FORMAT.run(urls, {})

        assert len(result.valid) + len(result.invalid) == len(urls)
        assert [c.url for c in result.valid] == ["https://example.com/ok", "https://example.com/also-ok"]
        assert {r.reason for r in result.invalid} == {"invalid_format"}
        assert result.stats == {"total": 4, "valid_count": 2, "invalid_count": 2}

    def test_rejected_item_keeps_its_fields(self):
        result = URL_FORMAT.run([{"url": "https://intranet/x", "entity_id": "e1", "entity_name": "Acme"}], {})
        rejected = result.invalid[0].to_dict()
        assert rejected["entity_name"] == "Acme"
        assert rejected["reason"] == "invalid_format"
        assert rejected["details"] == "Hostname missing TLD"
