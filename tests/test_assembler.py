from decimal import Decimal

import pytest

from food_ordering.models import OrderStatus
from food_ordering.services.ordering import (
    MenuItemAvailability,
    OrderAborted,
    OrderError,
    OrderErrorCode,
    OrderErrorKind,
    assemble_order,
    validate_lines,
)

CATALOG = {
    1: MenuItemAvailability(1, 10, "Margherita", Decimal("10.00"), True),
    2: MenuItemAvailability(2, 10, "Tiramisu", Decimal("5.00"), True),
    3: MenuItemAvailability(3, 10, "Calzone", Decimal("7.50"), False),
    4: MenuItemAvailability(4, 10, "Truffle Pasta", Decimal("3.25"), True, stock=2),
    5: MenuItemAvailability(5, 20, "Sushi Set", Decimal("9.00"), True),
}


async def lookup(menu_item_id):
    if menu_item_id not in CATALOG:
        raise OrderAborted(OrderError.not_found("menu_item", menu_item_id))
    return CATALOG[menu_item_id]


async def test_draft_uses_catalog_prices():
    draft = await assemble_order(7, 10, [(1, 2), (2, 1)], lookup)

    assert draft.status == OrderStatus.PENDING
    assert [(l.menu_item_id, l.quantity, l.price) for l in draft.lines] == [
        (1, 2, Decimal("10.00")),
        (2, 1, Decimal("5.00")),
    ]
    assert draft.total == Decimal("25.00")


async def test_stock_tracking_is_carried_on_lines():
    draft = await assemble_order(7, 10, [(1, 1), (4, 2)], lookup)

    assert [l.tracks_stock for l in draft.lines] == [False, True]


async def test_first_failing_line_aborts():
    with pytest.raises(OrderAborted) as excinfo:
        await assemble_order(7, 10, [(1, 1), (3, 1), (99, 1)], lookup)

    assert excinfo.value.error.code == OrderErrorCode.ITEM_UNAVAILABLE
    assert excinfo.value.error.entity_id == 3


async def test_stock_is_checked_across_duplicate_lines():
    with pytest.raises(OrderAborted) as excinfo:
        await assemble_order(7, 10, [(4, 1), (4, 2)], lookup)

    assert excinfo.value.error.code == OrderErrorCode.ITEM_UNAVAILABLE


async def test_item_of_other_restaurant_is_not_found():
    with pytest.raises(OrderAborted) as excinfo:
        await assemble_order(7, 10, [(5, 1)], lookup)

    assert excinfo.value.error.code == OrderErrorCode.NOT_FOUND
    assert excinfo.value.error.entity == "menu_item"


async def test_lookup_is_skipped_for_bad_shape():
    calls = []

    async def counting_lookup(menu_item_id):
        calls.append(menu_item_id)
        return await lookup(menu_item_id)

    with pytest.raises(OrderAborted):
        await assemble_order(7, 10, [(1, 1), (2, 0)], counting_lookup)

    assert calls == []


def test_validate_lines_limits():
    assert validate_lines([(1, 99)], max_quantity=99) == [(1, 99)]

    with pytest.raises(OrderAborted) as excinfo:
        validate_lines([(1, 100)], max_quantity=99)
    assert excinfo.value.error.code == OrderErrorCode.INVALID_QUANTITY

    with pytest.raises(OrderAborted) as excinfo:
        validate_lines([])
    assert excinfo.value.error.code == OrderErrorCode.EMPTY_ORDER


def test_availability_can_supply():
    assert CATALOG[1].can_supply(1000)
    assert not CATALOG[3].can_supply(1)
    assert CATALOG[4].can_supply(2)
    assert not CATALOG[4].can_supply(3)


@pytest.mark.parametrize(
    "error, kind, retryable",
    [
        (OrderError.empty_order(), OrderErrorKind.VALIDATION, False),
        (OrderError.not_found("order", 1), OrderErrorKind.NOT_FOUND, False),
        (OrderError.item_unavailable(1), OrderErrorKind.CONFLICT, False),
        (OrderError.store_conflict(), OrderErrorKind.CONFLICT, False),
        (OrderError.forbidden(1), OrderErrorKind.FORBIDDEN, False),
        (OrderError.store_unavailable("OperationalError"), OrderErrorKind.TRANSIENT, True),
    ],
)
def test_error_kinds(error, kind, retryable):
    assert error.kind == kind
    assert error.retryable is retryable
    assert error.to_dict()["error"] == error.code.value
