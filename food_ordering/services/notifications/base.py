"""
Status Notifier Abstract Base Class

Defines the push channel for order status changes. ``notify`` is
fire-and-forget from the workflow's point of view; ``subscribe`` feeds the
websocket endpoint.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncContextManager, AsyncIterator


@dataclass(frozen=True)
class StatusEvent:
    """A single order status change."""
    order_id: int
    status: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            "type": "order-update",
            "order_id": self.order_id,
            "status": self.status,
            "timestamp": self.timestamp,
        }


class BaseStatusNotifier(ABC):
    """Abstract base class for order status push channels."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def notify(self, order_id: int, status: str) -> None:
        """Publish a status change for ``order_id``."""
        pass

    @abstractmethod
    def subscribe(self, order_id: int) -> AsyncContextManager[AsyncIterator[StatusEvent]]:
        """
        Subscribe to status changes for ``order_id``.

        The subscription is live as soon as the context is entered; the
        yielded iterator produces events until the context exits.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check channel connectivity."""
        pass
