"""
SQLAlchemy Database Models

One set of tables serves every tenant; rows are isolated by restaurant_id.

- registration_requests: prospective tenants waiting for admin review
- restaurants: tenants created from approved requests
- users / admin_users: principals that can log in
- menu_items: per-tenant menu with sizes and add-ons
- orders: customer orders with a frozen copy of the cart lines

Version: 1.0.0
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.sql import func
from app.database import Base
import enum


class OrderStatus(str, enum.Enum):
    """Order status workflow (see app.services.order_workflow)."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class OrderType(str, enum.Enum):
    """Order type - eaten at a table or taken away."""
    TABLE = "table"
    TAKEAWAY = "takeaway"


class RegistrationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class RestaurantStatus(str, enum.Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"
    TRIAL = "trial"


class SubscriptionPlan(str, enum.Enum):
    FREE_TRIAL = "free_trial"
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class UserRole(str, enum.Enum):
    OWNER = "owner"
    STAFF = "staff"


class RegistrationRequest(Base):
    """
    Intake record for a restaurant that wants to join the platform.

    Lifecycle: pending -> verified (converted into a Restaurant) or rejected.
    Once resolved only the audit fields may change.
    """
    __tablename__ = "registration_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # APPLICANT
    # =========================================================================
    restaurant_name = Column(String(150), nullable=False)
    owner_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    city = Column(String(100), nullable=False)
    address = Column(String(255), nullable=True)
    restaurant_type = Column(String(50), nullable=False)
    heard_from = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # =========================================================================
    # REVIEW
    # =========================================================================
    status = Column(
        Enum(RegistrationStatus),
        default=RegistrationStatus.PENDING,
        nullable=False,
        index=True
    )
    rejection_reason = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<RegistrationRequest #{self.id} - {self.restaurant_name} - {self.status.value}>"


class Restaurant(Base):
    """A tenant. Created when an admin approves a registration request."""
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    registration_request_id = Column(
        Integer, ForeignKey("registration_requests.id"), nullable=True
    )

    # =========================================================================
    # PROFILE
    # =========================================================================
    name = Column(String(150), nullable=False)
    slug = Column(String(60), nullable=False, unique=True, index=True)
    owner_name = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=False)
    email = Column(String(255), nullable=False)
    city = Column(String(100), nullable=True)
    address = Column(String(255), nullable=True)
    restaurant_type = Column(String(50), nullable=True)

    # =========================================================================
    # ACCOUNT
    # =========================================================================
    subscription_plan = Column(
        Enum(SubscriptionPlan),
        default=SubscriptionPlan.FREE_TRIAL,
        nullable=False
    )
    status = Column(
        Enum(RestaurantStatus),
        default=RestaurantStatus.TRIAL,
        nullable=False,
        index=True
    )
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    internal_notes = Column(Text, nullable=True)

    # =========================================================================
    # BLOCKING (admin only, reversible)
    # =========================================================================
    block_reason = Column(Text, nullable=True)
    blocked_at = Column(DateTime(timezone=True), nullable=True)
    unblocked_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def is_active(self) -> bool:
        return self.status != RestaurantStatus.BLOCKED

    def __repr__(self):
        return f"<Restaurant #{self.id} - {self.slug} - {self.status.value}>"


class User(Base):
    """Restaurant staff login."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(64), nullable=False)
    temp_password = Column(Boolean, default=True, nullable=False)
    role = Column(Enum(UserRole), default=UserRole.OWNER, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User #{self.id} - {self.email} - {self.role.value}>"


class AdminUser(Base):
    """Platform administrator login."""
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(64), nullable=False)
    name = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class MenuItem(Base):
    """
    A dish on a tenant's menu.

    sizes:  [{"name": "Large", "price": 150.0}, ...]  - choosing one replaces base_price
    addons: [{"name": "Extra Cheese", "price": 20.0}, ...]  - each adds to the price
    """
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)

    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Float, nullable=False)
    category = Column(String(50), nullable=True)
    image_url = Column(String(500), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    sizes = Column(JSON, nullable=False, default=list)
    addons = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.base_price}>"


class Order(Base):
    """
    A customer order.

    Created once by the customer checkout (always pending), then moved
    through the workflow by restaurant staff. ``items`` is a frozen copy of
    the cart so later menu edits never change historical orders.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    order_number = Column(String(20), nullable=False, index=True)

    # =========================================================================
    # ORDER TYPE
    # =========================================================================
    order_type = Column(
        Enum(OrderType),
        default=OrderType.TABLE,
        nullable=False
    )
    table_number = Column(String(20), nullable=True)

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(20), nullable=False)
    customer_notes = Column(Text, nullable=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Float, nullable=False)
    tax = Column(Float, nullable=False)
    total = Column(Float, nullable=False)

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    cancellation_reason = Column(Text, nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Order {self.order_number} - {self.order_type.value} - {self.customer_name} - {self.status.value}>"
