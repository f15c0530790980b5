"""
Real Status Notifier

Production push channel:
- ``notify`` queues the ``broadcast_order_status`` Celery task
- the worker publishes the event on Redis pub/sub
- ``subscribe`` listens on the order's Redis channel
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis

from food_ordering.core.config import Settings
from food_ordering.services.notifications.base import BaseStatusNotifier, StatusEvent
from food_ordering.tasks import broadcast_order_status, order_channel

logger = logging.getLogger(__name__)


class RealStatusNotifier(BaseStatusNotifier):
    """Notifier backed by Celery and Redis pub/sub."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        logger.info("RealStatusNotifier initialized")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def notify(self, order_id: int, status: str) -> None:
        result = broadcast_order_status.delay(order_id, status)
        logger.info(f"Queued status event for order #{order_id} -> {status} (task {result.id})")

    @asynccontextmanager
    async def subscribe(self, order_id: int) -> AsyncIterator[AsyncIterator[StatusEvent]]:
        channel = order_channel(self.settings.order_updates_channel, order_id)
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            yield self._listen(pubsub, channel)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    @staticmethod
    async def _listen(pubsub, channel: str) -> AsyncIterator[StatusEvent]:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                data = json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning(f"Dropping malformed event on {channel}: {message['data']!r}")
                continue
            yield StatusEvent(
                order_id=data["order_id"],
                status=data["status"],
                timestamp=data["timestamp"],
            )

    async def health_check(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.redis.aclose()
