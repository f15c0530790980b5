"""
Status Notifier Factory

Returns the Mock or Real status notifier based on ENV_MODE.
"""

import logging
from functools import lru_cache

from food_ordering.core.config import get_settings
from food_ordering.services.notifications.base import BaseStatusNotifier, StatusEvent
from food_ordering.services.notifications.mock import MockStatusNotifier
from food_ordering.services.notifications.real import RealStatusNotifier

logger = logging.getLogger(__name__)


@lru_cache()
def get_status_notifier() -> BaseStatusNotifier:
    """Get the configured status notifier."""
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Status Notifier: Using RealStatusNotifier ({settings.env_mode.value} mode)")
        return RealStatusNotifier(settings)

    logger.info("Status Notifier: Using MockStatusNotifier (development mode)")
    return MockStatusNotifier()


def reset_status_notifier() -> None:
    """Clear the cached notifier instance."""
    get_status_notifier.cache_clear()


__all__ = [
    "get_status_notifier",
    "reset_status_notifier",
    "BaseStatusNotifier",
    "MockStatusNotifier",
    "RealStatusNotifier",
    "StatusEvent",
]
