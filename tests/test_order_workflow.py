import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering import crud
from food_ordering.models import OrderStatus
from food_ordering.services.notifications.mock import MockStatusNotifier
from food_ordering.services.ordering import OrderErrorCode, OrderErrorKind, OrderWorkflow


async def test_total_is_computed_from_menu_prices(workflow, menu, notifier):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 2), (menu.item_b, 1)])

    assert result.success
    order = result.order
    assert order.status == OrderStatus.PENDING
    assert order.total == Decimal("25.00")
    assert [item.quantity for item in order.items] == [2, 1]
    assert [item.price for item in order.items] == [Decimal("10.00"), Decimal("5.00")]
    assert order.total == sum(item.price * item.quantity for item in order.items)
    assert order.created_at is not None

    assert [(e.order_id, e.status) for e in notifier.published] == [(order.id, "pending")]


async def test_price_snapshot_survives_menu_price_change(workflow, menu, session_maker):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 2), (menu.item_b, 1)])
    assert result.success

    async with session_maker() as session:
        item = await crud.get_menu_item(session, menu.item_a)
        await crud.update_menu_item(session, item, {"price": Decimal("12.00")})
        await session.commit()

    async with session_maker() as session:
        order = await crud.get_order(session, result.order.id)

    assert order.items[0].price == Decimal("10.00")
    assert order.total == Decimal("25.00")


async def test_unavailable_item_writes_nothing(workflow, menu, notifier, row_counts):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_c, 1)])

    assert not result.success
    assert result.error.code == OrderErrorCode.ITEM_UNAVAILABLE
    assert result.error.entity_id == menu.item_c
    assert result.error.kind == OrderErrorKind.CONFLICT
    assert await row_counts() == (0, 0)
    assert notifier.published == []


async def test_unavailable_item_after_valid_lines_writes_nothing(workflow, menu, row_counts):
    result = await workflow.create_order(
        menu.u1, menu.restaurant, [(menu.item_a, 1), (menu.item_b, 3), (menu.item_c, 1)]
    )

    assert result.error.code == OrderErrorCode.ITEM_UNAVAILABLE
    assert await row_counts() == (0, 0)


async def test_empty_order_is_rejected(workflow, menu, row_counts):
    result = await workflow.create_order(menu.u1, menu.restaurant, [])

    assert result.error.code == OrderErrorCode.EMPTY_ORDER
    assert result.error.kind == OrderErrorKind.VALIDATION
    assert await row_counts() == (0, 0)


@pytest.mark.parametrize("quantity", [0, -1, True, 2.5, 100])
async def test_bad_quantity_is_rejected(workflow, menu, row_counts, quantity):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, quantity)])

    assert result.error.code == OrderErrorCode.INVALID_QUANTITY
    assert await row_counts() == (0, 0)


async def test_unknown_menu_item(workflow, menu):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 1), (9999, 1)])

    assert result.error.code == OrderErrorCode.NOT_FOUND
    assert (result.error.entity, result.error.entity_id) == ("menu_item", 9999)


async def test_item_from_another_restaurant(workflow, menu, row_counts):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.foreign, 1)])

    assert result.error.code == OrderErrorCode.NOT_FOUND
    assert result.error.entity_id == menu.foreign
    assert await row_counts() == (0, 0)


async def test_unknown_restaurant_and_user(workflow, menu):
    result = await workflow.create_order(menu.u1, 9999, [(menu.item_a, 1)])
    assert (result.error.entity, result.error.code) == ("restaurant", OrderErrorCode.NOT_FOUND)

    result = await workflow.create_order(9999, menu.restaurant, [(menu.item_a, 1)])
    assert (result.error.entity, result.error.code) == ("user", OrderErrorCode.NOT_FOUND)


async def test_duplicate_items_are_separate_lines(workflow, menu):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 1), (menu.item_a, 2)])

    assert result.success
    assert [(i.menu_item_id, i.quantity) for i in result.order.items] == [(menu.item_a, 1), (menu.item_a, 2)]
    assert result.order.total == Decimal("30.00")


async def test_identical_calls_create_distinct_orders(workflow, menu, row_counts):
    first = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_b, 1)])
    second = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_b, 1)])

    assert first.order.id != second.order.id
    assert await row_counts() == (2, 2)


async def test_commit_failure_leaves_no_rows(workflow, menu, row_counts, stock_of, monkeypatch):
    async def failing_commit(self):
        raise OperationalError("COMMIT", {}, ConnectionResetError("connection lost"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)

    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 2), (menu.item_d, 1)])

    assert result.error.code == OrderErrorCode.STORE_UNAVAILABLE
    assert result.error.retryable
    assert await row_counts() == (0, 0)
    assert await stock_of(menu.item_d) == 1


async def test_constraint_violation_is_a_conflict(workflow, menu, row_counts, monkeypatch):
    async def violating_commit(self):
        raise IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

    monkeypatch.setattr(AsyncSession, "commit", violating_commit)

    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 1)])

    assert result.error.code == OrderErrorCode.STORE_CONFLICT
    assert not result.error.retryable
    assert await row_counts() == (0, 0)


async def test_cancellation_before_commit_rolls_back(workflow, menu, row_counts, monkeypatch):
    async def cancelled(session, order_id):
        raise asyncio.CancelledError()

    monkeypatch.setattr(crud, "update_order_total", cancelled)

    with pytest.raises(asyncio.CancelledError):
        await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 1)])

    assert await row_counts() == (0, 0)


async def test_last_unit_can_only_be_ordered_once(workflow, menu, stock_of):
    first = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_d, 1)])
    second = await workflow.create_order(menu.u2, menu.restaurant, [(menu.item_d, 1)])

    assert first.success
    assert second.error.code == OrderErrorCode.ITEM_UNAVAILABLE
    assert await stock_of(menu.item_d) == 0


async def test_stock_covers_all_lines_of_one_order(workflow, menu, row_counts):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_d, 1), (menu.item_d, 1)])

    assert result.error.code == OrderErrorCode.ITEM_UNAVAILABLE
    assert await row_counts() == (0, 0)


async def test_concurrent_orders_for_last_unit(workflow, menu, row_counts, stock_of):
    results = await asyncio.gather(
        workflow.create_order(menu.u1, menu.restaurant, [(menu.item_d, 1)]),
        workflow.create_order(menu.u2, menu.restaurant, [(menu.item_d, 1)]),
    )

    committed = [r for r in results if r.success]
    assert len(committed) <= 1
    for failed in (r for r in results if not r.success):
        assert failed.error.code in (OrderErrorCode.ITEM_UNAVAILABLE, OrderErrorCode.STORE_UNAVAILABLE)

    orders, _ = await row_counts()
    assert orders == len(committed)
    assert await stock_of(menu.item_d) == 1 - len(committed)


async def test_notifier_failure_does_not_affect_order(session_maker, menu, row_counts):
    workflow = OrderWorkflow(session_maker, MockStatusNotifier(fail=True))

    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_b, 2)])

    assert result.success
    assert result.order.total == Decimal("10.00")
    assert await row_counts() == (1, 1)


async def test_without_row_locking(session_maker, menu):
    workflow = OrderWorkflow(session_maker, lock_rows=False)

    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 1)])

    assert result.success
    assert result.order.total == Decimal("10.00")
