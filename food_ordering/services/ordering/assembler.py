"""
Order Assembler

Turns the requested ``(menu_item_id, quantity)`` lines into an in-memory
order draft. Prices come from the availability check only; any price the
caller might have sent never reaches this module.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, Callable, NamedTuple, Optional, Sequence

from food_ordering.models import OrderStatus
from food_ordering.services.ordering.availability import MenuItemAvailability
from food_ordering.services.ordering.errors import OrderAborted, OrderError

AvailabilityLookup = Callable[[int], Awaitable[MenuItemAvailability]]


class OrderLine(NamedTuple):
    """One requested line."""
    menu_item_id: int
    quantity: int


@dataclass(frozen=True)
class DraftLine:
    menu_item_id: int
    quantity: int
    price: Decimal
    tracks_stock: bool = False

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class OrderDraft:
    """Order header plus lines, ready to be persisted."""
    user_id: int
    restaurant_id: int
    lines: list[DraftLine] = field(default_factory=list)
    status: OrderStatus = OrderStatus.PENDING

    @property
    def total(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0.00"))


def validate_lines(
    lines: Sequence[tuple[int, int]],
    max_quantity: Optional[int] = None,
) -> list[OrderLine]:
    """
    Check the request shape before any store access.

    Raises:
        OrderAborted: EMPTY_ORDER or INVALID_QUANTITY
    """
    if not lines:
        raise OrderAborted(OrderError.empty_order())

    validated = []
    for menu_item_id, quantity in lines:
        # bool is an int subclass; True is not a quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise OrderAborted(OrderError.invalid_quantity(menu_item_id, quantity))
        if max_quantity is not None and quantity > max_quantity:
            raise OrderAborted(OrderError.invalid_quantity(menu_item_id, quantity))
        validated.append(OrderLine(menu_item_id, quantity))
    return validated


async def assemble_order(
    user_id: int,
    restaurant_id: int,
    lines: Sequence[tuple[int, int]],
    check: AvailabilityLookup,
    max_quantity: Optional[int] = None,
) -> OrderDraft:
    """
    Build an ``OrderDraft`` for ``lines``.

    Duplicate menu item ids stay separate lines. For stock-tracked items the
    quantities of all lines naming the item must fit in the remaining stock.

    Raises:
        OrderAborted: on the first line that fails validation or lookup
    """
    validated = validate_lines(lines, max_quantity)
    draft = OrderDraft(user_id=user_id, restaurant_id=restaurant_id)
    requested: dict[int, int] = defaultdict(int)

    for line in validated:
        availability = await check(line.menu_item_id)

        if availability.restaurant_id != restaurant_id:
            # Not on this restaurant's menu
            raise OrderAborted(OrderError.not_found("menu_item", line.menu_item_id))

        requested[line.menu_item_id] += line.quantity
        if not availability.can_supply(requested[line.menu_item_id]):
            raise OrderAborted(OrderError.item_unavailable(line.menu_item_id))

        draft.lines.append(DraftLine(
            line.menu_item_id, line.quantity, availability.price, availability.tracks_stock,
        ))

    return draft
