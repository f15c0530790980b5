"""
Mock Status Notifier

In-process fan-out for development and tests. Nothing leaves the process;
every published event is also kept in ``published``.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator

from food_ordering.services.notifications.base import BaseStatusNotifier, StatusEvent

logger = logging.getLogger(__name__)


class MockStatusNotifier(BaseStatusNotifier):
    """Mock notifier delivering events to in-process subscribers."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: list[StatusEvent] = []
        self._subscribers: dict[int, set[asyncio.Queue]] = defaultdict(set)
        logger.info("MockStatusNotifier initialized")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def notify(self, order_id: int, status: str) -> None:
        if self.fail:
            raise ConnectionError("Simulated push channel failure")

        event = StatusEvent(order_id=order_id, status=status)
        self.published.append(event)
        for queue in self._subscribers.get(order_id, ()):
            queue.put_nowait(event)

        logger.info(f"Mock status event: order #{order_id} -> {status}")

    @asynccontextmanager
    async def subscribe(self, order_id: int) -> AsyncIterator[AsyncIterator[StatusEvent]]:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[order_id].add(queue)
        try:
            yield self._drain(queue)
        finally:
            self._subscribers[order_id].discard(queue)
            if not self._subscribers[order_id]:
                del self._subscribers[order_id]

    @staticmethod
    async def _drain(queue: asyncio.Queue) -> AsyncIterator[StatusEvent]:
        while True:
            yield await queue.get()

    def subscriber_count(self, order_id: int) -> int:
        return len(self._subscribers.get(order_id, ()))

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
