"""
Pydantic Schemas for Request/Response Validation

Shapes only: business rules (phone format, required table number, state
transitions) live in the services so they hold for every caller.

Version: 1.0.0
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Any
from datetime import datetime

from app.models import (
    OrderStatus,
    OrderType,
    RegistrationStatus,
    RestaurantStatus,
    SubscriptionPlan,
)


# =============================================================================
# SHARED
# =============================================================================

class PricedOption(BaseModel):
    """A size or add-on with its price."""
    name: str = Field(..., min_length=1, max_length=50, examples=["Large"])
    price: float = Field(..., ge=0, examples=[150.0])


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    message: str
    detail: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    change_feed: str
    timestamp: datetime


# =============================================================================
# AUTH
# =============================================================================

class LoginRequest(BaseModel):
    email: str = Field(..., examples=["owner@tastybites.in"])
    password: str = Field(..., examples=["K7QZ2MPA"])


class SessionResponse(BaseModel):
    token: str
    kind: str
    principal_id: int
    email: str
    restaurant_id: Optional[int] = None
    role: Optional[str] = None
    temp_password: bool = False
    issued_at: datetime
    expires_at: datetime
    profile: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# REGISTRATION REQUESTS
# =============================================================================

class RegistrationCreate(BaseModel):
    """Public registration form."""
    restaurant_name: str = Field("", max_length=150, examples=["Tasty Bites"])
    owner_name: str = Field("", max_length=100, examples=["Asha Rao"])
    phone: str = Field("", max_length=20, examples=["98765 43210"])
    email: str = Field("", max_length=255, examples=["asha@tastybites.in"])
    city: str = Field("", max_length=100, examples=["Pune"])
    address: Optional[str] = Field(None, max_length=255)
    restaurant_type: str = Field("", examples=["Cafe"])
    heard_from: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class RegistrationResponse(BaseModel):
    id: int
    restaurant_name: str
    owner_name: str
    phone: str
    email: str
    city: str
    address: Optional[str]
    restaurant_type: str
    heard_from: Optional[str]
    notes: Optional[str]
    status: RegistrationStatus
    rejection_reason: Optional[str]
    internal_notes: Optional[str]
    resolved_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ApproveRegistrationRequest(BaseModel):
    email: str = Field(..., examples=["owner@tastybites.in"])
    subscription_plan: SubscriptionPlan = SubscriptionPlan.FREE_TRIAL
    internal_notes: Optional[str] = None


class RejectRegistrationRequest(BaseModel):
    reason: str = Field("", max_length=1000)


class RegistrationNotesUpdate(BaseModel):
    internal_notes: Optional[str] = None


class AccountCreatedResponse(BaseModel):
    """Returned once; the admin copies the credentials to the owner."""
    success: bool
    restaurant_id: int
    restaurant_name: str
    slug: str
    credentials: dict[str, str]


# =============================================================================
# RESTAURANTS
# =============================================================================

class RestaurantResponse(BaseModel):
    id: int
    name: str
    slug: str
    owner_name: Optional[str]
    phone: str
    email: str
    city: Optional[str]
    address: Optional[str]
    restaurant_type: Optional[str]
    subscription_plan: SubscriptionPlan
    status: RestaurantStatus
    is_active: bool
    block_reason: Optional[str]
    blocked_at: Optional[datetime]
    unblocked_at: Optional[datetime]
    trial_ends_at: Optional[datetime]
    internal_notes: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class PublicRestaurantResponse(BaseModel):
    """What a customer sees on the QR menu page."""
    id: int
    name: str
    slug: str
    city: Optional[str]
    address: Optional[str]

    class Config:
        from_attributes = True


class BlockRestaurantRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


# =============================================================================
# MENU ITEMS
# =============================================================================

class MenuItemCreate(BaseModel):
    name: str = Field("", max_length=150, examples=["Margherita Pizza"])
    description: Optional[str] = None
    base_price: Optional[float] = Field(None, examples=[100.0])
    category: Optional[str] = Field(None, max_length=50, examples=["Main Course"])
    image_url: Optional[str] = Field(None, max_length=500)
    is_available: bool = True
    sizes: List[PricedOption] = Field(default_factory=list)
    addons: List[PricedOption] = Field(default_factory=list)


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = None
    base_price: Optional[float] = None
    category: Optional[str] = Field(None, max_length=50)
    image_url: Optional[str] = Field(None, max_length=500)
    is_available: Optional[bool] = None
    sizes: Optional[List[PricedOption]] = None
    addons: Optional[List[PricedOption]] = None


class AvailabilityUpdate(BaseModel):
    is_available: bool


class MenuItemResponse(BaseModel):
    id: int
    restaurant_id: int
    name: str
    description: Optional[str]
    base_price: float
    category: Optional[str]
    image_url: Optional[str]
    is_available: bool
    sizes: List[PricedOption]
    addons: List[PricedOption]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class PublicMenuResponse(BaseModel):
    restaurant: PublicRestaurantResponse
    categories: List[str]
    items: List[MenuItemResponse]
    tax_rate: float
    currency_symbol: str


# =============================================================================
# ORDERS
# =============================================================================

class CartLineRequest(BaseModel):
    """One cart line as submitted by the customer page."""
    menu_item_id: int
    quantity: int = Field(1, ge=1, le=99)
    size: Optional[str] = Field(None, examples=["Large"])
    addons: List[str] = Field(default_factory=list, examples=[["Extra Cheese"]])


class CheckoutRequest(BaseModel):
    """Customer checkout form plus the cart."""
    customer_name: str = Field("", max_length=100, examples=["Ravi"])
    customer_phone: str = Field("", max_length=20, examples=["9876543210"])
    order_type: OrderType = OrderType.TABLE
    table_number: Optional[str] = Field(None, max_length=20, examples=["T4"])
    customer_notes: Optional[str] = Field(None, max_length=500)
    lines: List[CartLineRequest] = Field(default_factory=list)


class OrderItemResponse(BaseModel):
    menu_item_id: int
    name: str
    quantity: int
    base_price: float
    selected_size: Optional[PricedOption] = None
    selected_addons: List[PricedOption] = Field(default_factory=list)
    unit_price: float
    item_total: float


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: int
    restaurant_id: int
    order_number: str
    order_type: OrderType
    table_number: Optional[str]
    customer_name: str
    customer_phone: str
    customer_notes: Optional[str]
    items: List[OrderItemResponse]
    subtotal: float
    tax: float
    total: float
    status: OrderStatus
    cancellation_reason: Optional[str]
    created_at: Optional[datetime]
    accepted_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    rejected_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrderCreateResponse(BaseModel):
    """Response after the customer places an order."""
    success: bool
    message: str
    order_id: int
    order_number: str
    total: float


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    pending: int
    orders: List[OrderResponse]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=500)


# =============================================================================
# STATS & REPORTS
# =============================================================================

class RestaurantStatsResponse(BaseModel):
    pending_orders: int
    completed_today: int
    revenue_today: float
    total_orders: int


class PlatformStatsResponse(BaseModel):
    active_restaurants: int
    pending_requests: int
    total_orders: int
    today_revenue: float


class SalesReportResponse(BaseModel):
    days: int
    total_revenue: float
    total_orders: int
    avg_order_value: float
    top_items: List[dict[str, Any]]
    daily_revenue: List[dict[str, Any]]
    order_type_distribution: List[dict[str, Any]]


class ReportExportResponse(BaseModel):
    success: bool
    message: str
    task_id: Optional[str] = None
