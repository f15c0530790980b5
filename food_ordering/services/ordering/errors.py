"""
Order Workflow Errors and Results

Every outcome of the order workflow is an ``OrderResult``. Failures carry an
``OrderError`` whose ``kind`` tells the caller how to react:

    validation  - bad request shape, rejected before touching the store
    not_found   - unknown user, restaurant, menu item or order
    conflict    - item unavailable, constraint violation, bad transition
    forbidden   - actor may not change this order
    transient   - store unreachable or timed out; safe to retry
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class OrderErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    TRANSIENT = "transient"


class OrderErrorCode(str, Enum):
    EMPTY_ORDER = "empty_order"
    INVALID_QUANTITY = "invalid_quantity"
    NOT_FOUND = "not_found"
    ITEM_UNAVAILABLE = "item_unavailable"
    STORE_CONFLICT = "store_conflict"
    INVALID_TRANSITION = "invalid_transition"
    FORBIDDEN = "forbidden"
    STORE_UNAVAILABLE = "store_unavailable"


_KIND_BY_CODE = {
    OrderErrorCode.EMPTY_ORDER: OrderErrorKind.VALIDATION,
    OrderErrorCode.INVALID_QUANTITY: OrderErrorKind.VALIDATION,
    OrderErrorCode.NOT_FOUND: OrderErrorKind.NOT_FOUND,
    OrderErrorCode.ITEM_UNAVAILABLE: OrderErrorKind.CONFLICT,
    OrderErrorCode.STORE_CONFLICT: OrderErrorKind.CONFLICT,
    OrderErrorCode.INVALID_TRANSITION: OrderErrorKind.CONFLICT,
    OrderErrorCode.FORBIDDEN: OrderErrorKind.FORBIDDEN,
    OrderErrorCode.STORE_UNAVAILABLE: OrderErrorKind.TRANSIENT,
}


@dataclass(frozen=True)
class OrderError:
    """
    A single workflow failure.

    Attributes:
        code: Machine-readable error code
        message: Human-readable description
        entity: Entity the error refers to (menu_item, restaurant, user, order)
        entity_id: Identifier of that entity
    """
    code: OrderErrorCode
    message: str
    entity: Optional[str] = None
    entity_id: Optional[int] = None

    @property
    def kind(self) -> OrderErrorKind:
        return _KIND_BY_CODE[self.code]

    @property
    def retryable(self) -> bool:
        return self.kind == OrderErrorKind.TRANSIENT

    @classmethod
    def empty_order(cls) -> "OrderError":
        return cls(OrderErrorCode.EMPTY_ORDER, "Order must contain at least one item")

    @classmethod
    def invalid_quantity(cls, menu_item_id: Any, quantity: Any) -> "OrderError":
        return cls(
            OrderErrorCode.INVALID_QUANTITY,
            f"Quantity must be a positive integer (got {quantity!r})",
            entity="menu_item",
            entity_id=menu_item_id,
        )

    @classmethod
    def not_found(cls, entity: str, entity_id: int) -> "OrderError":
        label = entity.replace("_", " ").capitalize()
        return cls(OrderErrorCode.NOT_FOUND, f"{label} #{entity_id} not found", entity, entity_id)

    @classmethod
    def item_unavailable(cls, menu_item_id: int) -> "OrderError":
        return cls(
            OrderErrorCode.ITEM_UNAVAILABLE,
            f"Menu item #{menu_item_id} is not available",
            entity="menu_item",
            entity_id=menu_item_id,
        )

    @classmethod
    def store_conflict(cls, detail: str = "") -> "OrderError":
        message = "Order conflicts with the current state of the store"
        return cls(OrderErrorCode.STORE_CONFLICT, f"{message}: {detail}" if detail else message)

    @classmethod
    def store_unavailable(cls, detail: str = "") -> "OrderError":
        message = "Order store is temporarily unavailable"
        return cls(OrderErrorCode.STORE_UNAVAILABLE, f"{message}: {detail}" if detail else message)

    @classmethod
    def invalid_transition(cls, order_id: int, current: str, requested: str) -> "OrderError":
        return cls(
            OrderErrorCode.INVALID_TRANSITION,
            f"Order #{order_id} cannot move from {current} to {requested}",
            entity="order",
            entity_id=order_id,
        )

    @classmethod
    def forbidden(cls, order_id: int) -> "OrderError":
        return cls(
            OrderErrorCode.FORBIDDEN,
            f"Not allowed to change order #{order_id}",
            entity="order",
            entity_id=order_id,
        )

    def to_dict(self) -> dict:
        return {
            "error": self.code.value,
            "detail": self.message,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "retryable": self.retryable,
        }


class OrderAborted(Exception):
    """Raised inside a transaction to abort it with ``error``."""

    def __init__(self, error: OrderError):
        super().__init__(error.message)
        self.error = error


@dataclass
class OrderResult:
    """
    Standardized workflow result.

    Exactly one of ``order`` and ``error`` is set.
    """
    success: bool
    order: Optional[Any] = None
    error: Optional[OrderError] = None

    @classmethod
    def ok(cls, order: Any) -> "OrderResult":
        return cls(success=True, order=order)

    @classmethod
    def failed(cls, error: OrderError) -> "OrderResult":
        return cls(success=False, error=error)
