"""
Pydantic Schemas for Request/Response Validation

Order requests carry menu item ids and quantities only. Prices and totals
appear in responses, never in requests.

Version: 1.0.0
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from food_ordering.core.security import BCRYPT_MAX_PASSWORD_BYTES, password_too_long
from food_ordering.models import OrderStatus


EMAIL_PATTERN = re.compile(r'^[\w\.\+-]+@[\w\.-]+\.\w+$')


# =============================================================================
# AUTH SCHEMAS
# =============================================================================

class UserCreate(BaseModel):
    """Registration request."""
    email: str = Field(..., max_length=320, examples=["jane@example.com"])
    password: str = Field(..., min_length=8, max_length=72)
    name: str = Field(..., min_length=1, max_length=100, examples=["Jane Doe"])

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Invalid email format')
        return v.lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        if password_too_long(v):
            raise ValueError(f'Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes when UTF-8 encoded')
        return v


class UserLogin(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    """Profile edit; omitted fields stay unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    avatar: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=20)
    bio: Optional[str] = Field(None, max_length=1000)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        cleaned = re.sub(r'[^\d]', '', v)
        if len(cleaned) < 10:
            raise ValueError('Phone number must have at least 10 digits')
        return v


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    avatar: Optional[str]
    phone: Optional[str]
    bio: Optional[str]


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    is_staff: bool
    profile: Optional[ProfileResponse]
    created_at: Optional[datetime]
    last_login_at: Optional[datetime]


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# =============================================================================
# RESTAURANT & MENU SCHEMAS
# =============================================================================

class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120, examples=["Pizza Margherita"])
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=80, examples=["pizza"])
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, examples=["14.99"])
    is_available: bool = True
    stock: Optional[int] = Field(None, ge=0)


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=80)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    is_available: Optional[bool] = None
    stock: Optional[int] = Field(None, ge=0)


class MenuItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    restaurant_id: int
    name: str
    description: Optional[str]
    category: Optional[str]
    price: Decimal
    is_available: bool
    stock: Optional[int]


class RestaurantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    address: str = Field(..., min_length=1, max_length=255)
    categories: List[str] = Field(default_factory=list)


class RestaurantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    address: str
    rating: float
    categories: List[str]
    menu: List[MenuItemResponse] = []

    @field_validator('categories', mode='before')
    @classmethod
    def category_names(cls, v: Any) -> List[str]:
        return [c if isinstance(c, str) else c.name for c in v]


class RestaurantListResponse(BaseModel):
    total: int
    restaurants: List[RestaurantResponse]


# =============================================================================
# ORDER SCHEMAS
# =============================================================================

class OrderLineCreate(BaseModel):
    """
    Single requested line. Any price sent by the client is ignored.

    The upper quantity bound is MAX_QUANTITY_PER_LINE, enforced by the order
    workflow.
    """
    menu_item_id: int = Field(..., ge=1, examples=[1])
    quantity: int = Field(..., ge=1, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""
    restaurant_id: int = Field(..., ge=1, examples=[1])
    items: List[OrderLineCreate] = Field(..., min_length=1)

    def lines(self) -> list[tuple[int, int]]:
        return [(item.menu_item_id, item.quantity) for item in self.items]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    quantity: int
    price: Decimal
    line_total: Decimal


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    restaurant_id: int
    status: OrderStatus
    total: Decimal
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    items: List[OrderItemResponse]


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


# =============================================================================
# GENERIC RESPONSES
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    entity: Optional[str] = None
    entity_id: Optional[int] = None
    retryable: bool = False


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    notifier: str
    timestamp: datetime
