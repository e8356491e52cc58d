"""
Lifecycle event publishing over Redis pub/sub.

Events are best effort: a missing Redis URL disables publishing and a
failed publish is logged, never raised.

Payload: {"type": <event type>, "data": {...}} as JSON on the channel.
"""

from __future__ import annotations

import json

from loguru import logger
from redis import Redis

from .config import DEFAULT_EVENTS_CHANNEL


SUBMODULE_START = "submodule_start"
SUBMODULE_COMPLETE = "submodule_complete"
SUBMODULE_APPROVAL = "submodule_approval"


class EventPublisher:
    """Publish {type, data} events to one channel."""

    def __init__(
        self,
        redis_url: str | None = None,
        channel: str = DEFAULT_EVENTS_CHANNEL,
        client=None,
    ):
        self.channel = channel
        self._client = client
        if self._client is None and redis_url:
            try:
                self._client = Redis.from_url(redis_url, decode_responses=True)
            except Exception as exc:
                logger.warning(f"[events] Invalid Redis URL, publishing disabled: {exc}")
                self._client = None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def publish(self, event_type: str, data: dict) -> bool:
        """Returns True if the event was handed to Redis."""
        if self._client is None:
            return False
        payload = json.dumps({"type": event_type, "data": data}, default=str)
        try:
            self._client.publish(self.channel, payload)
        except Exception as exc:
            logger.warning(f"[events] Failed to publish {event_type}: {exc}")
            return False
        return True

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as exc:
                logger.debug(f"[events] Error closing Redis client: {exc}")
