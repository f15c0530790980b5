"""
Entity Store Operations

Async query helpers over the ORM models. None of these functions commit;
the caller owns the transaction.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from food_ordering import models

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


# =============================================================================
# USERS
# =============================================================================

async def get_user(db: AsyncSession, user_id: int) -> Optional[models.User]:
    return await db.get(models.User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[models.User]:
    result = await db.execute(select(models.User).where(models.User.email == email.lower()))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    email: str,
    password_hash: str,
    name: str,
    is_staff: bool = False,
) -> models.User:
    email = email.lower()
    user = models.User(
        email=email,
        password_hash=password_hash,
        name=name,
        is_staff=is_staff,
        profile=models.Profile(avatar=f"https://api.dicebear.com/7.x/avatars/svg?seed={email}"),
    )
    db.add(user)
    await db.flush()
    return user


async def touch_last_login(db: AsyncSession, user: models.User) -> None:
    user.last_login_at = datetime.now(timezone.utc)
    await db.flush()


# =============================================================================
# RESTAURANTS & MENU
# =============================================================================

def _with_available_menu():
    return selectinload(models.Restaurant.menu.and_(models.MenuItem.is_available.is_(True)))


async def list_restaurants(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 20,
    category: Optional[str] = None,
) -> tuple[int, Sequence[models.Restaurant]]:
    query = select(models.Restaurant).options(_with_available_menu()).order_by(models.Restaurant.id)
    count_query = select(func.count(models.Restaurant.id))

    if category:
        condition = models.Restaurant.categories.any(models.Category.name == category)
        query = query.where(condition)
        count_query = count_query.where(condition)

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(query.offset(skip).limit(limit))
    return total, result.scalars().all()


async def get_restaurant(db: AsyncSession, restaurant_id: int, with_menu: bool = False) -> Optional[models.Restaurant]:
    query = select(models.Restaurant).where(models.Restaurant.id == restaurant_id)
    if with_menu:
        query = query.options(_with_available_menu())
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_or_create_categories(db: AsyncSession, names: Iterable[str]) -> list[models.Category]:
    wanted = sorted({n.strip() for n in names if n.strip()})
    if not wanted:
        return []

    result = await db.execute(select(models.Category).where(models.Category.name.in_(wanted)))
    existing = {c.name: c for c in result.scalars().all()}

    categories = []
    for name in wanted:
        category = existing.get(name)
        if category is None:
            category = models.Category(name=name)
            db.add(category)
        categories.append(category)
    return categories


async def create_restaurant(db: AsyncSession, data: dict) -> models.Restaurant:
    categories = await get_or_create_categories(db, data.get("categories", []))
    restaurant = models.Restaurant(
        name=data["name"],
        description=data.get("description"),
        address=data["address"],
        rating=data.get("rating", 0.0),
        categories=categories,
        menu=[],
    )
    db.add(restaurant)
    await db.flush()
    return restaurant


async def create_menu_item(db: AsyncSession, restaurant_id: int, data: dict) -> models.MenuItem:
    item = models.MenuItem(
        restaurant_id=restaurant_id,
        name=data["name"],
        description=data.get("description"),
        category=data.get("category"),
        price=data["price"],
        is_available=data.get("is_available", True),
        stock=data.get("stock"),
    )
    db.add(item)
    await db.flush()
    return item


async def update_menu_item(db: AsyncSession, item: models.MenuItem, data: dict) -> models.MenuItem:
    for key in ("name", "description", "category", "price", "is_available", "stock"):
        if key in data:
            setattr(item, key, data[key])
    await db.flush()
    return item


async def get_menu_item(
    db: AsyncSession,
    menu_item_id: int,
    for_update: bool = False,
) -> Optional[models.MenuItem]:
    """
    Read one menu item.

    ``for_update`` takes a row lock and refreshes any copy already in the
    session so the caller sees the committed row.
    """
    query = select(models.MenuItem).where(models.MenuItem.id == menu_item_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def reserve_stock(db: AsyncSession, menu_item_id: int, quantity: int) -> bool:
    """
    Take ``quantity`` units from a stock-tracked item.

    The decrement only applies while enough stock is left, so concurrent
    reservations can never drive stock negative.
    """
    result = await db.execute(
        update(models.MenuItem)
        .where(
            models.MenuItem.id == menu_item_id,
            models.MenuItem.stock.is_not(None),
            models.MenuItem.stock >= quantity,
        )
        .values(stock=models.MenuItem.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_stock(db: AsyncSession, menu_item_id: int, quantity: int) -> None:
    await db.execute(
        update(models.MenuItem)
        .where(models.MenuItem.id == menu_item_id, models.MenuItem.stock.is_not(None))
        .values(stock=models.MenuItem.stock + quantity)
        .execution_options(synchronize_session=False)
    )


# =============================================================================
# ORDERS
# =============================================================================

async def insert_order(db: AsyncSession, user_id: int, restaurant_id: int) -> models.Order:
    """Write the order header with a zero total placeholder."""
    order = models.Order(
        user_id=user_id,
        restaurant_id=restaurant_id,
        status=models.OrderStatus.PENDING,
        total=Decimal("0.00"),
    )
    db.add(order)
    await db.flush()
    return order


async def insert_order_items(db: AsyncSession, order_id: int, lines) -> None:
    """
    Write one row per line, keeping request order in ``position``.

    Stock-tracked lines must already be reserved; they are flagged so a
    later cancellation gives back exactly what was taken.
    """
    db.add_all([
        models.OrderItem(
            order_id=order_id,
            menu_item_id=line.menu_item_id,
            position=position,
            quantity=line.quantity,
            price=line.price,
            stock_reserved=line.tracks_stock,
        )
        for position, line in enumerate(lines)
    ])
    await db.flush()


async def update_order_total(db: AsyncSession, order_id: int) -> Decimal:
    """Recompute the total from the persisted items and store it on the header."""
    result = await db.execute(
        select(models.OrderItem.price, models.OrderItem.quantity)
        .where(models.OrderItem.order_id == order_id)
    )
    total = sum(
        (Decimal(price) * quantity for price, quantity in result.all()),
        Decimal("0"),
    ).quantize(CENTS)

    await db.execute(
        update(models.Order)
        .where(models.Order.id == order_id)
        .values(total=total)
        .execution_options(synchronize_session=False)
    )
    return total


async def get_order(db: AsyncSession, order_id: int, for_update: bool = False) -> Optional[models.Order]:
    query = (
        select(models.Order)
        .options(selectinload(models.Order.items))
        .where(models.Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update(of=models.Order)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_orders(
    db: AsyncSession,
    user_id: int,
    skip: int = 0,
    limit: int = 10,
    status: Optional[models.OrderStatus] = None,
) -> tuple[int, Sequence[models.Order]]:
    query = (
        select(models.Order)
        .options(selectinload(models.Order.items))
        .where(models.Order.user_id == user_id)
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
    )
    count_query = select(func.count(models.Order.id)).where(models.Order.user_id == user_id)

    if status is not None:
        query = query.where(models.Order.status == status)
        count_query = count_query.where(models.Order.status == status)

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(query.offset(skip).limit(limit))
    return total, result.scalars().all()


async def count_orders(db: AsyncSession) -> tuple[int, int]:
    """Return (order rows, order item rows)."""
    orders = (await db.execute(select(func.count(models.Order.id)))).scalar() or 0
    items = (await db.execute(select(func.count(models.OrderItem.id)))).scalar() or 0
    return orders, items


# =============================================================================
# DEMO DATA
# =============================================================================

DEMO_RESTAURANTS = [
    {
        "name": "Napoli Express",
        "description": "Wood-fired pizza and fresh pasta.",
        "address": "350 Fifth Avenue, New York",
        "rating": 4.6,
        "categories": ["Italian", "Pizza"],
        "menu": [
            {"name": "Pizza Margherita", "price": Decimal("14.99"), "category": "pizza"},
            {"name": "Pepperoni Pizza", "price": Decimal("16.99"), "category": "pizza"},
            {"name": "Pasta Carbonara", "price": Decimal("13.99"), "category": "pasta"},
            {"name": "Tiramisu", "price": Decimal("7.99"), "category": "dessert", "stock": 12},
        ],
    },
    {
        "name": "Green Bowl",
        "description": "Salads, grain bowls and cold-pressed juice.",
        "address": "11 Madison Ave, New York",
        "rating": 4.3,
        "categories": ["Healthy", "Vegetarian"],
        "menu": [
            {"name": "Caesar Salad", "price": Decimal("8.99"), "category": "salad"},
            {"name": "Quinoa Bowl", "price": Decimal("11.49"), "category": "bowl"},
            {"name": "Green Juice", "price": Decimal("5.49"), "category": "drinks", "is_available": False},
        ],
    },
]


async def seed_demo_data(db: AsyncSession) -> bool:
    """Seed demo restaurants when the store has none. Returns True if seeded."""
    existing = (await db.execute(select(func.count(models.Restaurant.id)))).scalar() or 0
    if existing:
        return False

    for entry in DEMO_RESTAURANTS:
        restaurant = await create_restaurant(db, entry)
        for item in entry["menu"]:
            await create_menu_item(db, restaurant.id, item)

    await db.commit()
    logger.info(f"Seeded {len(DEMO_RESTAURANTS)} demo restaurants")
    return True
