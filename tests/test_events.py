"""
Tests for lifecycle event publishing.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from orchestrate.events import SUBMODULE_COMPLETE, EventPublisher
from fakes import FakeRedis


def test_publishes_json_payload():
    client = FakeRedis()
    publisher = EventPublisher(client=client)
    assert publisher.enabled
    assert publisher.publish(SUBMODULE_COMPLETE, {"run_id": "r1", "result_count": 3})

    [(channel, _)] = client.published
    assert channel == "pipeline-events"
    assert client.events() == [{"type": "submodule_complete", "data": {"run_id": "r1", "result_count": 3}}]


def test_custom_channel():
    client = FakeRedis()
    EventPublisher(channel="other", client=client).publish("x", {})
    assert client.published[0][0] == "other"


def test_disabled_without_url():
    publisher = EventPublisher(None)
    assert not publisher.enabled
    assert publisher.publish(SUBMODULE_COMPLETE, {}) is False
    publisher.close()


def test_publish_failure_is_swallowed():
    publisher = EventPublisher(client=FakeRedis(fail=True))
    assert publisher.publish(SUBMODULE_COMPLETE, {"run_id": "r1"}) is False


def test_close_closes_client():
    client = FakeRedis()
    EventPublisher(client=client).close()
    assert client.closed
