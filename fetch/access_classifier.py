"""
Block detection for direct responses.

Side-effect free: answers "does this response look like bot protection?"
without I/O.
"""

from __future__ import annotations


BLOCK_STATUSES = (403, 429, 503)

CHALLENGE_MARKERS = [
    "captcha",
    "cloudflare",
    "please enable javascript",
    "enable javascript",
    "browser check",
    "checking your browser",
    "ddos protection",
    "just a moment",
]

# Only checked on bodies shorter than SHORT_BODY_CHARS
SHORT_BODY_MARKER = "blocked"
SHORT_BODY_CHARS = 1000


def _marker_hits(html: str, markers: list[str]) -> list[str]:
    lower = html.lower()
    return [m for m in markers if m in lower]


def detect_block(status: int | None, body: str | None) -> list[str]:
    """
    Return the block signals found in a response.

    An empty list means the response looks like a normal page.
    """
    signals = []
    if status in BLOCK_STATUSES:
        signals.append(f"status_{status}")

    body = body or ""
    signals.extend(f"marker:{m}" for m in _marker_hits(body, CHALLENGE_MARKERS))

    if len(body) < SHORT_BODY_CHARS and SHORT_BODY_MARKER in body.lower():
        signals.append("short_blocked_body")

    return signals

