import json
import logging
from typing import Any, Dict, Protocol

import redis.asyncio as redis

from ..config.config import settings

logger = logging.getLogger(__name__)

# Channel every connected client listens on.
ALL_EVENTS_CHANNEL = "all-events"


def block_channel(block_id: int) -> str:
    """Per-block channel students of that block subscribe to."""
    return f"block-{block_id}"


class Notifier(Protocol):
    """Fan-out capability injected into services that announce changes."""

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        ...


class RedisNotifier:
    """
    Publishes notifications over Redis pub/sub. The push gateway subscribes
    to '<prefix>:<channel>' and relays each JSON message to its clients.
    """

    def __init__(self, pool: redis.ConnectionPool, prefix: str = None):
        self._redis = redis.Redis(connection_pool=pool, decode_responses=True)
        self._prefix = prefix or settings.NOTIFICATION_CHANNEL_PREFIX

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        message = json.dumps({"event": event, "payload": payload}, default=str)
        receivers = await self._redis.publish(f"{self._prefix}:{channel}", message)
        logger.debug(f"Published '{event}' to '{channel}' ({receivers} receivers).")
