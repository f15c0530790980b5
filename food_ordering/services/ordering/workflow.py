"""
Transactional Order Workflow

Creates orders atomically and drives their later status transitions.

create_order:
    1. Validate the request shape (no store access on failure)
    2. Open a transaction
    3. Check the user and restaurant exist
    4. Assemble the draft, re-reading every menu item inside the transaction
    5. Insert the order header with a zero total
    6. Reserve stock for stock-tracked items
    7. Insert the order items with their price snapshots
    8. Recompute the total from the persisted items
    9. Commit, or roll back everything on any failure
   10. Notify subscribers (failures are logged, never raised)

Callers always get an ``OrderResult``; store errors are mapped to
``store_conflict`` or the retryable ``store_unavailable``.
"""

import asyncio
import logging
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from food_ordering import crud
from food_ordering.models import Order, OrderStatus
from food_ordering.services.notifications.base import BaseStatusNotifier
from food_ordering.services.ordering.assembler import assemble_order, validate_lines
from food_ordering.services.ordering.availability import check_availability
from food_ordering.services.ordering.errors import OrderAborted, OrderError, OrderResult

logger = logging.getLogger(__name__)

TRANSIENT_STORE_ERRORS = (
    OperationalError,
    InterfaceError,
    PoolTimeoutError,
    asyncio.TimeoutError,
    OSError,
)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


class OrderWorkflow:
    """
    Order creation and status transitions over an injected session factory.

    Args:
        session_maker: Factory for the store sessions (one per operation)
        notifier: Push channel for status changes, optional
        lock_rows: Read menu items with ``SELECT ... FOR UPDATE``
        max_quantity: Largest quantity accepted on one line
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        notifier: Optional[BaseStatusNotifier] = None,
        *,
        lock_rows: bool = True,
        max_quantity: Optional[int] = None,
    ):
        self.session_maker = session_maker
        self.notifier = notifier
        self.lock_rows = lock_rows
        self.max_quantity = max_quantity

    # =========================================================================
    # ORDER CREATION
    # =========================================================================

    async def create_order(
        self,
        user_id: int,
        restaurant_id: int,
        items: Sequence[tuple[int, int]],
    ) -> OrderResult:
        """Create a ``pending`` order for ``items`` or change nothing at all."""
        try:
            lines = validate_lines(items, self.max_quantity)
        except OrderAborted as exc:
            logger.info(f"Order rejected for user #{user_id}: {exc.error.message}")
            return OrderResult.failed(exc.error)

        result = await self._run_in_transaction(
            self._write_order, user_id, restaurant_id, lines,
        )
        if not result.success:
            return result

        order = await self._load_order(result.order)
        logger.info(
            f"Order #{order.id} created for user #{user_id} "
            f"({len(order.items)} items, total {order.total})"
        )
        await self._notify(order.id, order.status)
        return OrderResult.ok(order)

    async def _write_order(self, session: AsyncSession, user_id: int, restaurant_id: int, lines) -> int:
        if await crud.get_user(session, user_id) is None:
            raise OrderAborted(OrderError.not_found("user", user_id))
        if await crud.get_restaurant(session, restaurant_id) is None:
            raise OrderAborted(OrderError.not_found("restaurant", restaurant_id))

        async def check(menu_item_id: int):
            return await check_availability(session, menu_item_id, lock=self.lock_rows)

        draft = await assemble_order(user_id, restaurant_id, lines, check, self.max_quantity)

        order = await crud.insert_order(session, draft.user_id, draft.restaurant_id)

        for line in draft.lines:
            if line.tracks_stock and not await crud.reserve_stock(session, line.menu_item_id, line.quantity):
                raise OrderAborted(OrderError.item_unavailable(line.menu_item_id))

        await crud.insert_order_items(session, order.id, draft.lines)

        total = await crud.update_order_total(session, order.id)
        if total != draft.total:
            logger.warning(f"Order #{order.id}: persisted total {total} differs from draft total {draft.total}")

        return order.id

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    async def update_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        *,
        actor_id: int,
        actor_is_staff: bool = False,
    ) -> OrderResult:
        """
        Move ``order_id`` to ``new_status``.

        Owners may only cancel their own orders; staff may make any allowed
        transition. Cancelling gives reserved stock back.
        """
        result = await self._run_in_transaction(
            self._write_status, order_id, new_status, actor_id, actor_is_staff,
        )
        if not result.success:
            return result

        order = await self._load_order(result.order)
        logger.info(f"Order #{order.id} moved to {order.status.value} by user #{actor_id}")
        await self._notify(order.id, order.status)
        return OrderResult.ok(order)

    async def _write_status(
        self,
        session: AsyncSession,
        order_id: int,
        new_status: OrderStatus,
        actor_id: int,
        actor_is_staff: bool,
    ) -> int:
        order = await crud.get_order(session, order_id, for_update=self.lock_rows)
        if order is None:
            raise OrderAborted(OrderError.not_found("order", order_id))

        is_owner = order.user_id == actor_id
        if not actor_is_staff and not (is_owner and new_status == OrderStatus.CANCELLED):
            raise OrderAborted(OrderError.forbidden(order_id))

        if not can_transition(order.status, new_status):
            raise OrderAborted(OrderError.invalid_transition(order_id, order.status.value, new_status.value))

        if new_status == OrderStatus.CANCELLED:
            for item in order.items:
                if not item.stock_reserved:
                    continue
                await crud.release_stock(session, item.menu_item_id, item.quantity)

        order.status = new_status
        await session.flush()
        return order.id

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _run_in_transaction(self, operation, *args) -> OrderResult:
        """
        Run ``operation(session, *args)`` and commit.

        The returned result carries the operation's return value in
        ``order`` on success.
        """
        async with self.session_maker() as session:
            try:
                value = await operation(session, *args)
                await session.commit()
            except OrderAborted as exc:
                await session.rollback()
                logger.info(f"Transaction aborted: {exc.error.message}")
                return OrderResult.failed(exc.error)
            except IntegrityError as exc:
                await session.rollback()
                logger.warning(f"Store conflict, transaction rolled back: {exc.orig}")
                return OrderResult.failed(OrderError.store_conflict(str(exc.orig)))
            except TRANSIENT_STORE_ERRORS as exc:
                await self._rollback_quietly(session)
                logger.warning(f"Store unavailable, transaction rolled back: {exc}")
                return OrderResult.failed(OrderError.store_unavailable(type(exc).__name__))
            except asyncio.CancelledError:
                logger.warning("Order operation cancelled before commit, rolling back")
                await asyncio.shield(self._rollback_quietly(session))
                raise

        return OrderResult.ok(value)

    @staticmethod
    async def _rollback_quietly(session: AsyncSession) -> None:
        # The connection may already be gone; the server discards the transaction then
        try:
            await session.rollback()
        except TRANSIENT_STORE_ERRORS as exc:
            logger.warning(f"Rollback failed after lost connection: {exc}")

    async def _load_order(self, order_id: int) -> Order:
        async with self.session_maker() as session:
            return await crud.get_order(session, order_id)

    async def _notify(self, order_id: int, status: OrderStatus) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(order_id, status.value)
        except Exception as e:
            logger.warning(f"Status notification failed for order #{order_id}: {e}")
