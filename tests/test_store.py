import pytest
from sqlalchemy.exc import InvalidRequestError

from food_ordering import crud


async def test_menu_is_only_available_when_loaded(session_maker, menu):
    async with session_maker() as session:
        created = await crud.create_restaurant(session, {"name": "Pop-up", "address": "3 Market Sq"})
        assert created.menu == []

        plain = await crud.get_restaurant(session, menu.restaurant)
        with pytest.raises(InvalidRequestError):
            plain.menu

    async with session_maker() as session:
        loaded = await crud.get_restaurant(session, menu.restaurant, with_menu=True)
        assert {item.name for item in loaded.menu} == {"itemA", "itemB", "itemD"}


async def test_user_orders_are_never_lazy_loaded(session_maker, menu):
    async with session_maker() as session:
        user = await crud.get_user(session, menu.u1)
        with pytest.raises(InvalidRequestError):
            user.orders
