"""
Tests for the per-execution run logger.
"""

import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger as default_logger

from orchestrate.run_logger import RunLogger
from submodules.base import context_logger


def test_buffers_structured_lines():
    log = RunLogger("discovery/sitemap", "run-1")
    log.info("Processing 2 entities", {"count": 2})
    log.warn("no website")
    log.error("boom")

    lines = log.lines
    assert [line["level"] for line in lines] == ["info", "warning", "error"]
    assert lines[0]["msg"] == "Processing 2 entities"
    assert lines[0]["data"] == {"count": 2}
    assert lines[1]["data"] is None
    assert all(line["ts"] for line in lines)


def test_lines_is_a_copy():
    log = RunLogger("validation/dedupe")
    log.debug("x")
    log.lines.clear()
    assert len(log) == 1


def test_messages_with_braces():
    log = RunLogger("discovery/navigation")
    log.info('Slug "{a}" {0}')
    assert log.lines[0]["msg"] == 'Slug "{a}" {0}'


def test_thread_safe():
    log = RunLogger("discovery/navigation")
    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(lambda i: log.info(f"entity {i}"), range(200)))
    assert len(log) == 200


def test_context_logger_uses_empty_run_logger():
    log = RunLogger("discovery/sitemap")
    assert len(log) == 0
    assert context_logger({"logger": log}) is log

    context_logger({"logger": log}).info("[sitemap] Processing 1 entities")
    assert [line["msg"] for line in log.lines] == ["[sitemap] Processing 1 entities"]


def test_context_logger_falls_back_without_logger():
    assert context_logger({}) is default_logger
    assert context_logger(None) is default_logger
