"""
Celery Tasks
Background delivery of order status events to Redis pub/sub.
"""

import json
import logging
from datetime import datetime, timezone

import redis

from food_ordering.celery_worker import celery_app, settings

logger = logging.getLogger(__name__)


def order_channel(prefix: str, order_id: int) -> str:
    """Redis pub/sub channel carrying status events for one order."""
    return f"{prefix}:{order_id}"


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=2,
    autoretry_for=(redis.RedisError,),
    retry_backoff=True
)
def broadcast_order_status(self, order_id: int, status: str) -> dict:
    """
    Publish a status change for ``order_id``.

    Args:
        order_id: Order whose status changed
        status: New status value

    Returns:
        dict: Channel name and number of subscribers that received the event
    """
    channel = order_channel(settings.order_updates_channel, order_id)
    event = {
        "type": "order-update",
        "order_id": order_id,
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    client = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
    try:
        receivers = client.publish(channel, json.dumps(event))
    finally:
        client.close()

    logger.info(f"Task {self.request.id}: order #{order_id} -> {status} delivered to {receivers} subscriber(s)")
    return {"channel": channel, "receivers": receivers}
