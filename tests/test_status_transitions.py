import pytest

from food_ordering import crud
from food_ordering.models import OrderStatus
from food_ordering.services.ordering import OrderErrorCode
from food_ordering.services.ordering.workflow import ALLOWED_TRANSITIONS, can_transition


@pytest.fixture
async def placed_order(workflow, menu):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 1), (menu.item_d, 1)])
    assert result.success
    return result.order


def test_terminal_statuses_have_no_way_out():
    assert ALLOWED_TRANSITIONS[OrderStatus.DELIVERED] == frozenset()
    assert ALLOWED_TRANSITIONS[OrderStatus.CANCELLED] == frozenset()
    assert can_transition(OrderStatus.PENDING, OrderStatus.CANCELLED)
    assert not can_transition(OrderStatus.PREPARING, OrderStatus.CANCELLED)
    assert not can_transition(OrderStatus.PENDING, OrderStatus.DELIVERED)


async def test_owner_cancel_releases_stock(workflow, menu, placed_order, notifier, stock_of):
    assert await stock_of(menu.item_d) == 0

    result = await workflow.update_status(placed_order.id, OrderStatus.CANCELLED, actor_id=menu.u1)

    assert result.success
    assert result.order.status == OrderStatus.CANCELLED
    assert await stock_of(menu.item_d) == 1
    assert [e.status for e in notifier.published] == ["pending", "cancelled"]


async def test_owner_cannot_confirm(workflow, menu, placed_order):
    result = await workflow.update_status(placed_order.id, OrderStatus.CONFIRMED, actor_id=menu.u1)

    assert result.error.code == OrderErrorCode.FORBIDDEN


async def test_other_customer_cannot_cancel(workflow, menu, placed_order, stock_of):
    result = await workflow.update_status(placed_order.id, OrderStatus.CANCELLED, actor_id=menu.u2)

    assert result.error.code == OrderErrorCode.FORBIDDEN
    assert await stock_of(menu.item_d) == 0


async def test_staff_moves_order_to_delivered(workflow, menu, placed_order, notifier):
    for status in (
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    ):
        result = await workflow.update_status(placed_order.id, status, actor_id=menu.staff, actor_is_staff=True)
        assert result.success
        assert result.order.status == status

    assert [e.status for e in notifier.published] == [
        "pending", "confirmed", "preparing", "out_for_delivery", "delivered",
    ]


async def test_skipping_ahead_is_rejected(workflow, menu, placed_order):
    result = await workflow.update_status(
        placed_order.id, OrderStatus.DELIVERED, actor_id=menu.staff, actor_is_staff=True,
    )

    assert result.error.code == OrderErrorCode.INVALID_TRANSITION


async def test_cancelled_order_stays_cancelled(workflow, menu, placed_order, stock_of):
    await workflow.update_status(placed_order.id, OrderStatus.CANCELLED, actor_id=menu.u1)

    again = await workflow.update_status(placed_order.id, OrderStatus.CANCELLED, actor_id=menu.u1)

    assert again.error.code == OrderErrorCode.INVALID_TRANSITION
    assert await stock_of(menu.item_d) == 1


async def test_unknown_order(workflow, menu):
    result = await workflow.update_status(9999, OrderStatus.CONFIRMED, actor_id=menu.staff, actor_is_staff=True)

    assert result.error.code == OrderErrorCode.NOT_FOUND
    assert (result.error.entity, result.error.entity_id) == ("order", 9999)


async def test_cancel_only_returns_stock_that_was_taken(workflow, menu, session_maker, stock_of):
    result = await workflow.create_order(menu.u1, menu.restaurant, [(menu.item_a, 2), (menu.item_d, 1)])
    assert [item.stock_reserved for item in result.order.items] == [False, True]

    # Staff start tracking itemA after the order was placed
    async with session_maker() as session:
        item = await crud.get_menu_item(session, menu.item_a)
        await crud.update_menu_item(session, item, {"stock": 5})
        await session.commit()

    cancelled = await workflow.update_status(result.order.id, OrderStatus.CANCELLED, actor_id=menu.u1)

    assert cancelled.success
    assert await stock_of(menu.item_a) == 5
    assert await stock_of(menu.item_d) == 1
