"""
Notification dispatchers.

Delivery (push, SMS, e-mail) happens in a separate consumer; the engine
only emits lifecycle events.  ``RedisDispatcher`` publishes them as JSON
on a pub/sub channel, ``LoggingDispatcher`` just logs them.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from src.domain.ports import NotificationDispatcher

logger = logging.getLogger(__name__)


class LoggingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        self.sent.append((event, payload))
        logger.info("Event %s %s", event, payload)


class RedisDispatcher(NotificationDispatcher):
    def __init__(self, client: aioredis.Redis, channel: str):
        self.redis = client
        self.channel = channel

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        message = json.dumps({"event": event, "payload": payload}, default=str)
        await self.redis.publish(self.channel, message)
