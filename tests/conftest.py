from decimal import Decimal
from types import SimpleNamespace

import pytest

from food_ordering import crud
from food_ordering.core.config import Settings
from food_ordering.database import build_engine, build_session_maker, init_db
from food_ordering.services.notifications.mock import MockStatusNotifier
from food_ordering.services.ordering import OrderWorkflow


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        env_mode="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        jwt_secret_key="test-secret",
        staff_emails="chef@example.com",
        seed_demo_data=False,
    )


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def notifier() -> MockStatusNotifier:
    return MockStatusNotifier()


@pytest.fixture
def workflow(session_maker, notifier) -> OrderWorkflow:
    return OrderWorkflow(session_maker, notifier, lock_rows=True, max_quantity=99)


@pytest.fixture
async def menu(session_maker):
    """
    Users U1 (customer), U2 (customer) and a staff member; one restaurant with
    itemA 10.00, itemB 5.00, itemC unavailable and itemD with one unit left;
    a second restaurant with its own dish.
    """
    async with session_maker() as session:
        u1 = await crud.create_user(session, "u1@example.com", "x", "U1")
        u2 = await crud.create_user(session, "u2@example.com", "x", "U2")
        staff = await crud.create_user(session, "chef@example.com", "x", "Chef", is_staff=True)

        restaurant = await crud.create_restaurant(
            session, {"name": "Testaurant", "address": "1 Test St", "categories": ["Test"]}
        )
        other = await crud.create_restaurant(session, {"name": "Elsewhere", "address": "2 Far Rd"})

        item_a = await crud.create_menu_item(session, restaurant.id, {"name": "itemA", "price": Decimal("10.00")})
        item_b = await crud.create_menu_item(session, restaurant.id, {"name": "itemB", "price": Decimal("5.00")})
        item_c = await crud.create_menu_item(
            session, restaurant.id, {"name": "itemC", "price": Decimal("7.50"), "is_available": False}
        )
        item_d = await crud.create_menu_item(
            session, restaurant.id, {"name": "itemD", "price": Decimal("3.25"), "stock": 1}
        )
        foreign = await crud.create_menu_item(session, other.id, {"name": "foreign", "price": Decimal("9.00")})
        await session.commit()

        return SimpleNamespace(
            u1=u1.id,
            u2=u2.id,
            staff=staff.id,
            restaurant=restaurant.id,
            other_restaurant=other.id,
            item_a=item_a.id,
            item_b=item_b.id,
            item_c=item_c.id,
            item_d=item_d.id,
            foreign=foreign.id,
        )


@pytest.fixture
def row_counts(session_maker):
    """Return an async callable giving (orders, order items) row counts."""
    async def _row_counts() -> tuple[int, int]:
        async with session_maker() as session:
            return await crud.count_orders(session)
    return _row_counts


@pytest.fixture
def stock_of(session_maker):
    async def _stock_of(menu_item_id: int):
        async with session_maker() as session:
            item = await crud.get_menu_item(session, menu_item_id)
            return item.stock
    return _stock_of
