"""
Availability Check

Reads a menu item's authoritative price and orderable state. Runs inside the
order transaction so the result cannot go stale before commit.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering import crud
from food_ordering.services.ordering.errors import OrderAborted, OrderError


@dataclass(frozen=True)
class MenuItemAvailability:
    """Snapshot of the fields the order workflow trusts."""
    menu_item_id: int
    restaurant_id: int
    name: str
    price: Decimal
    is_available: bool
    stock: Optional[int] = None

    @property
    def tracks_stock(self) -> bool:
        return self.stock is not None

    def can_supply(self, quantity: int) -> bool:
        if not self.is_available:
            return False
        if self.stock is None:
            return True
        return self.stock >= quantity


async def check_availability(
    session: AsyncSession,
    menu_item_id: int,
    *,
    lock: bool = False,
) -> MenuItemAvailability:
    """
    Return the current price and availability of ``menu_item_id``.

    Raises:
        OrderAborted: NOT_FOUND when no such menu item exists
    """
    item = await crud.get_menu_item(session, menu_item_id, for_update=lock)
    if item is None:
        raise OrderAborted(OrderError.not_found("menu_item", menu_item_id))

    return MenuItemAvailability(
        menu_item_id=item.id,
        restaurant_id=item.restaurant_id,
        name=item.name,
        price=Decimal(item.price),
        is_available=bool(item.is_available),
        stock=item.stock,
    )
