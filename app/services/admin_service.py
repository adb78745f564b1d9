"""
Admin Service

Platform administration: registration intake and review, tenant
account creation, block/unblock, platform stats and the admin live lists.

create_restaurant_account is the one multi-row write in the system: the
restaurant, its owner login and the verified request are committed in a
single transaction, so either all three exist or none do.

Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from app.core.helpers import (
    generate_slug,
    generate_temp_password,
    hash_password,
    is_valid_email,
    is_valid_phone,
    normalize_phone,
)
from app.models import (
    Order,
    RegistrationRequest,
    RegistrationStatus,
    Restaurant,
    RestaurantStatus,
    SubscriptionPlan,
    User,
    UserRole,
)
from app.services.order_workflow import (
    TransitionResult,
    transition_registration,
    transition_restaurant,
)
from app.services.realtime import (
    BaseChangeFeed,
    ChangeEvent,
    ChangeScope,
    LiveQuery,
    get_change_feed,
    publish_change,
)

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class AccountCreationResult:
    """
    Result of converting a registration request into a tenant.

    The temporary password is only ever returned here, for the admin to
    copy and pass on; it is not stored in clear and not sent anywhere.
    """
    success: bool
    restaurant_id: Optional[int] = None
    restaurant_name: Optional[str] = None
    slug: Optional[str] = None
    credentials: dict[str, str] = field(default_factory=dict)
    error_message: Optional[str] = None


async def _publish(feed: Optional[BaseChangeFeed], event: ChangeEvent) -> None:
    await publish_change(event, feed)


# =============================================================================
# REGISTRATION REQUESTS
# =============================================================================

def validate_registration(data: dict[str, Any]) -> dict[str, Any]:
    """
    Check a registration form.

    Raises:
        ValidationError: with a message per missing/invalid field
    """
    errors: dict[str, str] = {}

    def text(key: str) -> str:
        return str(data.get(key) or "").strip()

    if not text("restaurant_name"):
        errors["restaurant_name"] = "Restaurant name is required"
    if not text("owner_name"):
        errors["owner_name"] = "Owner name is required"

    if not text("phone"):
        errors["phone"] = "Phone number is required"
    elif not is_valid_phone(text("phone")):
        errors["phone"] = "Please enter a valid 10-digit phone number"

    if not text("email"):
        errors["email"] = "Email is required"
    elif not is_valid_email(text("email")):
        errors["email"] = "Please enter a valid email address"

    if not text("city"):
        errors["city"] = "City is required"

    if not text("restaurant_type"):
        errors["restaurant_type"] = "Restaurant type is required"
    elif text("restaurant_type") not in settings.restaurant_types_list:
        errors["restaurant_type"] = "Please choose a restaurant type from the list"

    if errors:
        raise ValidationError(errors)

    return {
        "restaurant_name": text("restaurant_name"),
        "owner_name": text("owner_name"),
        "phone": normalize_phone(text("phone")),
        "email": text("email").lower(),
        "city": text("city"),
        "address": text("address") or None,
        "restaurant_type": text("restaurant_type"),
        "heard_from": text("heard_from") or None,
        "notes": text("notes") or None,
    }


async def submit_registration(
    db: AsyncSession,
    data: dict[str, Any],
    feed: Optional[BaseChangeFeed] = None,
) -> RegistrationRequest:
    """Store a new pending registration request."""
    request = RegistrationRequest(
        **validate_registration(data),
        status=RegistrationStatus.PENDING,
    )
    db.add(request)
    try:
        await db.commit()
        await db.refresh(request)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Registration insert failed: {e}")
        raise StoreError("Could not submit your registration, please try again") from e

    logger.info(f"Registration request #{request.id} received: {request.restaurant_name}")
    await _publish(feed, ChangeEvent(
        table="registration_requests",
        action="insert",
        row_id=request.id,
        values={"status": request.status.value},
    ))
    return request


async def list_registration_requests(
    db: AsyncSession,
    status: Optional[RegistrationStatus] = RegistrationStatus.PENDING,
) -> list[RegistrationRequest]:
    query = select(RegistrationRequest).order_by(
        RegistrationRequest.created_at.desc(), RegistrationRequest.id.desc()
    )
    if status is not None:
        query = query.where(RegistrationRequest.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_registration_request(db: AsyncSession, request_id: int) -> RegistrationRequest:
    request = await db.get(RegistrationRequest, request_id)
    if request is None:
        raise NotFoundError("Registration request not found")
    return request


async def _unique_slug(db: AsyncSession, name: str) -> str:
    base = generate_slug(name) or "restaurant"
    slug = base
    suffix = 2
    while (await db.execute(select(Restaurant.id).where(Restaurant.slug == slug))).first():
        tail = f"-{suffix}"
        slug = f"{base[:50 - len(tail)]}{tail}"
        suffix += 1
    return slug


async def create_restaurant_account(
    db: AsyncSession,
    request_id: int,
    email: str,
    subscription_plan: SubscriptionPlan = SubscriptionPlan.FREE_TRIAL,
    internal_notes: Optional[str] = None,
    feed: Optional[BaseChangeFeed] = None,
) -> AccountCreationResult:
    """
    Approve a registration request and create the tenant.

    Restaurant + owner user + request marked verified, in one transaction.

    Args:
        request_id: Pending registration request to convert
        email: Login email for the owner account
        subscription_plan: Plan the tenant starts on
        internal_notes: Admin-only notes stored on the restaurant

    Returns:
        AccountCreationResult with the generated credentials on success
    """
    email = (email or "").strip().lower()
    if not is_valid_email(email):
        raise ValidationError({"email": "Please enter a valid email address"})

    request = await get_registration_request(db, request_id)
    transition = transition_registration(request, RegistrationStatus.VERIFIED)
    if not transition.success:
        return AccountCreationResult(success=False, error_message=transition.error_message)

    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.first() is not None:
        await db.rollback()
        return AccountCreationResult(
            success=False, error_message=f"A user with email {email} already exists"
        )

    slug = await _unique_slug(db, request.restaurant_name)
    temp_password = generate_temp_password()
    now = datetime.now(timezone.utc)
    is_trial = subscription_plan == SubscriptionPlan.FREE_TRIAL

    restaurant = Restaurant(
        registration_request_id=request.id,
        name=request.restaurant_name,
        slug=slug,
        owner_name=request.owner_name,
        phone=request.phone,
        email=email,
        city=request.city,
        address=request.address,
        restaurant_type=request.restaurant_type,
        subscription_plan=subscription_plan,
        status=RestaurantStatus.TRIAL if is_trial else RestaurantStatus.ACTIVE,
        trial_ends_at=now + timedelta(days=settings.trial_days) if is_trial else None,
        internal_notes=(internal_notes or "").strip() or None,
    )

    try:
        db.add(restaurant)
        await db.flush()
        db.add(User(
            restaurant_id=restaurant.id,
            email=email,
            password_hash=hash_password(temp_password),
            temp_password=True,
            role=UserRole.OWNER,
        ))
        await db.commit()
        await db.refresh(restaurant)
    except IntegrityError as e:
        await db.rollback()
        logger.error(f"Account creation conflict for request #{request_id}: {e}")
        return AccountCreationResult(success=False, error_message="Failed to create restaurant")
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Account creation failed for request #{request_id}: {e}")
        raise StoreError("Failed to create restaurant, please try again") from e

    logger.info(f"Restaurant #{restaurant.id} '{slug}' created from request #{request_id}")

    await _publish(feed, ChangeEvent(
        table="registration_requests",
        action="update",
        row_id=request_id,
        values={"status": RegistrationStatus.VERIFIED.value},
        previous={"status": RegistrationStatus.PENDING.value},
    ))
    await _publish(feed, ChangeEvent(
        table="restaurants", action="insert", row_id=restaurant.id,
    ))

    return AccountCreationResult(
        success=True,
        restaurant_id=restaurant.id,
        restaurant_name=restaurant.name,
        slug=slug,
        credentials={
            "email": email,
            "password": temp_password,
            "login_url": f"{settings.app_base_url}/login",
        },
    )


async def reject_registration_request(
    db: AsyncSession,
    request_id: int,
    reason: str,
    feed: Optional[BaseChangeFeed] = None,
) -> TransitionResult:
    """Reject a pending request; a reason is required."""
    request = await get_registration_request(db, request_id)
    result = transition_registration(request, RegistrationStatus.REJECTED, reason=reason)
    if not result.success:
        return result

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise StoreError("Could not reject the request, please try again") from e

    logger.info(f"Registration request #{request_id} rejected")
    await _publish(feed, ChangeEvent(
        table="registration_requests",
        action="update",
        row_id=request_id,
        values={"status": RegistrationStatus.REJECTED.value},
        previous={"status": RegistrationStatus.PENDING.value},
    ))
    return result


async def update_registration_notes(
    db: AsyncSession,
    request_id: int,
    internal_notes: Optional[str],
    feed: Optional[BaseChangeFeed] = None,
) -> RegistrationRequest:
    """Audit notes stay editable after a request is resolved."""
    request = await get_registration_request(db, request_id)
    request.internal_notes = (internal_notes or "").strip() or None
    try:
        await db.commit()
        await db.refresh(request)
    except SQLAlchemyError as e:
        await db.rollback()
        raise StoreError("Could not save notes, please try again") from e

    await _publish(feed, ChangeEvent(
        table="registration_requests",
        action="update",
        row_id=request_id,
        values={"status": request.status.value},
    ))
    return request


# =============================================================================
# RESTAURANTS
# =============================================================================

async def list_restaurants(db: AsyncSession) -> list[Restaurant]:
    result = await db.execute(
        select(Restaurant).order_by(Restaurant.created_at.desc(), Restaurant.id.desc())
    )
    return list(result.scalars().all())


async def _set_restaurant_status(
    db: AsyncSession,
    restaurant_id: int,
    target: RestaurantStatus,
    reason: Optional[str],
    feed: Optional[BaseChangeFeed],
) -> Restaurant:
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise NotFoundError(f"Restaurant #{restaurant_id} not found")

    result = transition_restaurant(restaurant, target, reason=reason)
    if not result.success:
        raise InvalidTransitionError(result.error_message)

    try:
        await db.commit()
        await db.refresh(restaurant)
    except SQLAlchemyError as e:
        await db.rollback()
        raise StoreError("Could not update the restaurant, please try again") from e

    logger.info(
        f"Restaurant #{restaurant_id}: {result.previous.value} -> {result.status.value}"
        + (f" ({restaurant.block_reason})" if target == RestaurantStatus.BLOCKED and restaurant.block_reason else "")
    )
    await _publish(feed, ChangeEvent(
        table="restaurants",
        action="update",
        row_id=restaurant_id,
        values={"status": result.status.value},
        previous={"status": result.previous.value},
    ))
    return restaurant


async def block_restaurant(
    db: AsyncSession,
    restaurant_id: int,
    reason: Optional[str] = None,
    feed: Optional[BaseChangeFeed] = None,
) -> Restaurant:
    return await _set_restaurant_status(db, restaurant_id, RestaurantStatus.BLOCKED, reason, feed)


async def unblock_restaurant(
    db: AsyncSession,
    restaurant_id: int,
    feed: Optional[BaseChangeFeed] = None,
) -> Restaurant:
    return await _set_restaurant_status(db, restaurant_id, RestaurantStatus.ACTIVE, None, feed)


# =============================================================================
# PLATFORM STATS
# =============================================================================

async def get_platform_stats(db: AsyncSession) -> dict[str, Any]:
    active = await db.execute(
        select(func.count(Restaurant.id)).where(Restaurant.status != RestaurantStatus.BLOCKED)
    )
    pending = await db.execute(
        select(func.count(RegistrationRequest.id)).where(
            RegistrationRequest.status == RegistrationStatus.PENDING
        )
    )
    orders = await db.execute(select(func.count(Order.id)))

    today_start = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    revenue = await db.execute(
        select(func.sum(Order.total)).where(Order.created_at >= today_start)
    )

    return {
        "active_restaurants": active.scalar() or 0,
        "pending_requests": pending.scalar() or 0,
        "total_orders": orders.scalar() or 0,
        "today_revenue": round(revenue.scalar() or 0.0, 2),
    }


# =============================================================================
# LIVE LISTS
# =============================================================================

def pending_requests_live_query(
    session_factory: async_sessionmaker,
    on_change: Callable[[list[RegistrationRequest]], Any],
    feed: Optional[BaseChangeFeed] = None,
) -> LiveQuery:
    """Live list of registration requests awaiting review."""

    async def fetch() -> list[RegistrationRequest]:
        async with session_factory() as db:
            return await list_registration_requests(db, RegistrationStatus.PENDING)

    return LiveQuery(
        feed or get_change_feed(),
        ChangeScope("registration_requests", "status", RegistrationStatus.PENDING.value),
        fetch,
        on_change,
        debounce=settings.live_list_debounce_seconds,
    )


def restaurants_live_query(
    session_factory: async_sessionmaker,
    on_change: Callable[[list[Restaurant]], Any],
    feed: Optional[BaseChangeFeed] = None,
) -> LiveQuery:
    """Live list of every tenant."""

    async def fetch() -> list[Restaurant]:
        async with session_factory() as db:
            return await list_restaurants(db)

    return LiveQuery(
        feed or get_change_feed(),
        ChangeScope("restaurants"),
        fetch,
        on_change,
        debounce=settings.live_list_debounce_seconds,
    )
