"""
Tests for fetch/access_classifier.py (block detection on direct responses).
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fetch.access_classifier import detect_block


def test_normal_page_is_not_blocked():
    html = "<html><body><h1>Acme Trucking</h1><p>" + "Fleet news. " * 200 + "</p></body></html>"
    assert detect_block(200, html) == []


def test_block_statuses():
    for status in (403, 429, 503):
        assert f"status_{status}" in detect_block(status, "<html></html>")


def test_captcha_marker_on_403():
    signals = detect_block(403, "<html><body>Please complete the CAPTCHA</body></html>")
    assert "status_403" in signals
    assert "marker:captcha" in signals


def test_challenge_marker_on_200():
    assert detect_block(200, "<title>Just a moment...</title> Checking your browser")


def test_short_blocked_body():
    assert "short_blocked_body" in detect_block(200, "<p>Request blocked.</p>")


def test_long_page_mentioning_blocked_is_fine():
    html = "<p>" + "Our drivers never get blocked at the dock. " * 50 + "</p>"
    assert detect_block(200, html) == []


def test_missing_body():
    assert detect_block(None, None) == []
