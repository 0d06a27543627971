import asyncio
import json
import logging
from typing import Any, Protocol

import redis
from redis.exceptions import RedisError

from ridedispatch.core.correlation import get_current_correlation_id

from .channels import is_valid_channel

logger = logging.getLogger(__name__)


class RealtimeChannel(Protocol):
    """Best-effort, at-most-once message delivery to a named channel."""

    def publish_sync(self, channel: str, message: dict[str, Any]) -> None: ...

    async def publish(self, channel: str, message: dict[str, Any]) -> None: ...


class RedisPublisher:
    """Synchronous Redis publisher for real-time dispatch messages.

    Uses the sync Redis client so it works from FastAPI worker threads and
    from the event loop alike; the async variant hops to a worker thread.
    """

    def __init__(self, config: dict[str, Any]):
        self.config = config
        self._client = redis.Redis(
            host=config["host"],
            port=config["port"],
            db=config.get("db", 0),
            password=config.get("password"),
            ssl=config.get("ssl", False),
            socket_timeout=config.get("socket_timeout", 2.0),
            socket_connect_timeout=config.get("socket_connect_timeout", 2.0),
            decode_responses=True,
        )

    def publish_sync(self, channel: str, message: dict[str, Any]) -> None:
        """Synchronous publish method."""
        if not is_valid_channel(channel):
            raise ValueError(
                f"Channel '{channel}' is not a valid channel. "
                "Expected driver:<id>, rider:<id> or ride:<id>"
            )

        correlation_id = get_current_correlation_id()
        if correlation_id and "correlation_id" not in message:
            message = {**message, "correlation_id": correlation_id}

        try:
            self._client.publish(channel, json.dumps(message, default=str))
        except RedisError as e:
            logger.error(f"Failed to publish to channel {channel}: {e}")

    async def publish(self, channel: str, message: dict[str, Any]) -> None:
        await asyncio.to_thread(self.publish_sync, channel, message)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            return False

    def close(self) -> None:
        self._client.close()
