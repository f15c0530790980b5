"""
FastAPI Application Entry Point

Food Ordering API

Endpoints:
    - POST /api/auth/register, /api/auth/login: Accounts and bearer tokens
    - GET  /api/restaurants: Restaurants with their available menu
    - POST /api/orders: Atomic order creation
    - PATCH /api/orders/{id}/status: Order status transitions
    - WS   /ws/orders/{id}: Live order status updates
    - GET  /health: System health check

Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering import crud
from food_ordering.core.config import Settings, get_settings, setup_logging
from food_ordering.core.security import (
    Unauthenticated,
    create_access_token,
    get_app_settings,
    get_current_staff,
    get_current_user,
    hash_password,
    load_user,
    verify_password,
)
from food_ordering.database import build_engine, build_session_maker, get_db, init_db
from food_ordering.models import OrderStatus, User
from food_ordering.schemas import (
    ErrorResponse,
    HealthResponse,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    ProfileUpdate,
    RestaurantCreate,
    RestaurantListResponse,
    RestaurantResponse,
    TokenResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)
from food_ordering.services.notifications import BaseStatusNotifier, get_status_notifier
from food_ordering.services.ordering import OrderError, OrderErrorKind, OrderWorkflow

setup_logging()
logger = logging.getLogger(__name__)

HTTP_STATUS_BY_KIND = {
    OrderErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    OrderErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    OrderErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    OrderErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    OrderErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
}

RETRY_AFTER_SECONDS = "2"

ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 403, 404, 409, 503)}

router = APIRouter()


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    settings: Settings = app.state.settings

    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    engine = build_engine(settings)
    app.state.engine = engine
    app.state.session_maker = build_session_maker(engine)

    await init_db(engine)
    logger.info("✅ Database initialized")

    if settings.seed_demo_data:
        async with app.state.session_maker() as session:
            await crud.seed_demo_data(session)

    if getattr(app.state, "notifier", None) is None:
        app.state.notifier = get_status_notifier()
    logger.info(f"✅ Status Notifier: {app.state.notifier.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("✅ Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# DEPENDENCIES & HELPERS
# =============================================================================

def get_notifier(request: Request) -> BaseStatusNotifier:
    return request.app.state.notifier


def get_order_workflow(request: Request) -> OrderWorkflow:
    settings: Settings = request.app.state.settings
    return OrderWorkflow(
        request.app.state.session_maker,
        request.app.state.notifier,
        lock_rows=settings.order_row_locking,
        max_quantity=settings.max_quantity_per_line,
    )


def order_error_response(error: OrderError) -> JSONResponse:
    """Translate a workflow error into its HTTP response."""
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if error.retryable else None
    return JSONResponse(
        status_code=HTTP_STATUS_BY_KIND[error.kind],
        content=ErrorResponse(**error.to_dict()).model_dump(),
        headers=headers,
    )


def ensure_order_visible(order, user: User) -> None:
    if order is None or (order.user_id != user.id and not user.is_staff):
        raise HTTPException(status_code=404, detail="Order not found")


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@router.get("/", tags=["Root"])
async def root(request: Request) -> dict[str, str]:
    """API root with navigation links."""
    settings: Settings = request.app.state.settings
    return {
        "message": f"🍕 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    notifier: BaseStatusNotifier = Depends(get_notifier),
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    notifier_status = "healthy" if await notifier.health_check() else "unhealthy"

    overall = "operational" if db_status == notifier_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        notifier=notifier_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@router.post("/api/auth/register", response_model=UserResponse, status_code=201, tags=["Auth"])
async def register(
    user_in: UserCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> UserResponse:
    """Create an account. Emails listed in STAFF_EMAILS register as staff."""
    if await crud.get_user_by_email(db, user_in.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user = await crud.create_user(
        db,
        email=user_in.email,
        password_hash=hash_password(user_in.password),
        name=user_in.name,
        is_staff=user_in.email in settings.staff_emails_list,
    )
    await db.commit()
    await db.refresh(user)

    logger.info(f"User #{user.id} registered")
    return UserResponse.model_validate(user)


@router.post("/api/auth/login", response_model=TokenResponse, tags=["Auth"])
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> TokenResponse:
    user = await crud.get_user_by_email(db, credentials.email)
    if user is None or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    await crud.touch_last_login(db, user)
    await db.commit()
    await db.refresh(user)

    return TokenResponse(
        access_token=create_access_token(user, settings),
        user=UserResponse.model_validate(user),
    )


@router.get("/api/auth/me", response_model=UserResponse, tags=["Auth"])
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.patch("/api/auth/me/profile", response_model=UserResponse, tags=["Auth"])
async def update_profile(
    changes: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    data = changes.model_dump(exclude_unset=True)

    if "name" in data:
        user.name = data.pop("name")
    for key, value in data.items():
        setattr(user.profile, key, value)

    await db.commit()
    await db.refresh(user)
    return UserResponse.model_validate(user)


@router.post("/api/auth/logout", tags=["Auth"])
async def logout(user: User = Depends(get_current_user)) -> dict[str, str]:
    # Tokens are stateless; the client discards its copy
    return {"message": "Logged out successfully"}


# =============================================================================
# RESTAURANT & MENU ENDPOINTS
# =============================================================================

@router.get("/api/restaurants", response_model=RestaurantListResponse, tags=["Restaurants"])
async def list_restaurants(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> RestaurantListResponse:
    """Restaurants with their currently available menu items."""
    total, restaurants = await crud.list_restaurants(db, skip=skip, limit=limit, category=category)
    return RestaurantListResponse(
        total=total,
        restaurants=[RestaurantResponse.model_validate(r) for r in restaurants],
    )


@router.get("/api/restaurants/{restaurant_id}", response_model=RestaurantResponse, tags=["Restaurants"])
async def get_restaurant(restaurant_id: int, db: AsyncSession = Depends(get_db)) -> RestaurantResponse:
    restaurant = await crud.get_restaurant(db, restaurant_id, with_menu=True)
    if restaurant is None:
        raise HTTPException(status_code=404, detail=f"Restaurant #{restaurant_id} not found")
    return RestaurantResponse.model_validate(restaurant)


@router.post("/api/restaurants", response_model=RestaurantResponse, status_code=201, tags=["Restaurants"])
async def create_restaurant(
    restaurant_in: RestaurantCreate,
    staff: User = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
) -> RestaurantResponse:
    restaurant = await crud.create_restaurant(db, restaurant_in.model_dump())
    await db.commit()
    logger.info(f"Restaurant #{restaurant.id} created by user #{staff.id}")
    return RestaurantResponse.model_validate(restaurant)


@router.post(
    "/api/restaurants/{restaurant_id}/menu-items",
    response_model=MenuItemResponse,
    status_code=201,
    tags=["Menu"],
)
async def create_menu_item(
    restaurant_id: int,
    item_in: MenuItemCreate,
    staff: User = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    if await crud.get_restaurant(db, restaurant_id) is None:
        raise HTTPException(status_code=404, detail=f"Restaurant #{restaurant_id} not found")

    item = await crud.create_menu_item(db, restaurant_id, item_in.model_dump())
    await db.commit()
    return MenuItemResponse.model_validate(item)


@router.patch("/api/menu-items/{menu_item_id}", response_model=MenuItemResponse, tags=["Menu"])
async def update_menu_item(
    menu_item_id: int,
    changes: MenuItemUpdate,
    staff: User = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    """Edit a menu item. Existing orders keep the price they were placed at."""
    item = await crud.get_menu_item(db, menu_item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Menu item #{menu_item_id} not found")

    await crud.update_menu_item(db, item, changes.model_dump(exclude_unset=True))
    await db.commit()
    await db.refresh(item)
    return MenuItemResponse.model_validate(item)


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@router.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_in: OrderCreate,
    user: User = Depends(get_current_user),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    """
    Place an order for the authenticated user.

    Prices and the total are computed from the menu; the request only names
    menu items and quantities.
    """
    logger.info(f"Creating order for user #{user.id} at restaurant #{order_in.restaurant_id}")

    result = await workflow.create_order(user.id, order_in.restaurant_id, order_in.lines())
    if not result.success:
        return order_error_response(result.error)

    return OrderResponse.model_validate(result.order)


@router.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Retrieve the authenticated user's orders, newest first."""
    status_enum = None
    if status_filter:
        try:
            status_enum = OrderStatus(status_filter.lower())
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status. Options: {[s.value for s in OrderStatus]}"
            )

    total, orders = await crud.list_orders(db, user.id, skip=skip, limit=limit, status=status_enum)
    return OrderListResponse(
        total=total,
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


@router.get("/api/orders/{order_id}", response_model=OrderResponse, tags=["Orders"])
async def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await crud.get_order(db, order_id)
    ensure_order_visible(order, user)
    return OrderResponse.model_validate(order)


@router.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def update_order_status(
    order_id: int,
    change: OrderStatusUpdate,
    user: User = Depends(get_current_user),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    result = await workflow.update_status(
        order_id,
        change.status,
        actor_id=user.id,
        actor_is_staff=user.is_staff,
    )
    if not result.success:
        return order_error_response(result.error)

    return OrderResponse.model_validate(result.order)


# =============================================================================
# WEBSOCKET
# =============================================================================

@router.websocket("/ws/orders/{order_id}")
async def order_updates(websocket: WebSocket, order_id: int, token: Optional[str] = None) -> None:
    """
    Stream status changes of one order.

    The bearer token is passed as the ``token`` query parameter since
    browsers cannot set headers on websocket requests.
    """
    app = websocket.app
    async with app.state.session_maker() as db:
        try:
            user = await load_user(db, token, app.state.settings)
        except Unauthenticated:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    # Subscribe before reading the snapshot so no change falls in between
    async with app.state.notifier.subscribe(order_id) as events:
        async with app.state.session_maker() as db:
            order = await crud.get_order(db, order_id)
        if order is None or (order.user_id != user.id and not user.is_staff):
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        await websocket.send_json({"type": "order-status", "order_id": order_id, "status": order.status.value})

        try:
            async for event in events:
                await websocket.send_json(event.to_dict())
        except WebSocketDisconnect:
            logger.debug(f"Websocket for order #{order_id} disconnected")
        finally:
            await events.aclose()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")
    settings: Settings = request.app.state.settings

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

def create_app(settings: Optional[Settings] = None, notifier: Optional[BaseStatusNotifier] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration, defaults to ``get_settings()``
        notifier: Status push channel, defaults to ``get_status_notifier()``
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Restaurant ordering backend with atomic order creation and live status updates.",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.notifier = notifier

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.add_exception_handler(Exception, global_exception_handler)

    return app


app = create_app()
