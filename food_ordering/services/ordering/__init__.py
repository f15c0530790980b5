"""
Ordering Service Module

Availability check, order assembly and the transactional order workflow.

Usage:
    from food_ordering.services.ordering import OrderWorkflow

    workflow = OrderWorkflow(session_maker, notifier)
    result = await workflow.create_order(user_id, restaurant_id, [(1, 2), (4, 1)])
    if not result.success:
        print(result.error.code, result.error.message)
"""

from food_ordering.services.ordering.assembler import (
    DraftLine,
    OrderDraft,
    OrderLine,
    assemble_order,
    validate_lines,
)
from food_ordering.services.ordering.availability import MenuItemAvailability, check_availability
from food_ordering.services.ordering.errors import (
    OrderAborted,
    OrderError,
    OrderErrorCode,
    OrderErrorKind,
    OrderResult,
)
from food_ordering.services.ordering.workflow import ALLOWED_TRANSITIONS, OrderWorkflow, can_transition

__all__ = [
    "ALLOWED_TRANSITIONS",
    "DraftLine",
    "MenuItemAvailability",
    "OrderAborted",
    "OrderDraft",
    "OrderError",
    "OrderErrorCode",
    "OrderErrorKind",
    "OrderLine",
    "OrderResult",
    "OrderWorkflow",
    "assemble_order",
    "can_transition",
    "check_availability",
    "validate_lines",
]
