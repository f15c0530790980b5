"""
Celery Worker Configuration
Delivers order status events through Redis. Broker, result backend and
pub/sub all share REDIS_URL.

Run: celery -A food_ordering.celery_worker worker -Q order-events
"""

from celery import Celery

from food_ordering.core.config import get_settings

settings = get_settings()

ORDER_EVENTS_QUEUE = 'order-events'

celery_app = Celery(
    'food_ordering_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['food_ordering.tasks'],
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    task_default_queue=ORDER_EVENTS_QUEUE,
    task_routes={'food_ordering.tasks.broadcast_order_status': {'queue': ORDER_EVENTS_QUEUE}},

    # Publishing is a single Redis call; anything slower is a stuck connection
    task_time_limit=30,
    worker_prefetch_multiplier=1,

    # Status events are only useful while fresh
    result_expires=600,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
