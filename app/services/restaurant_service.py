"""
Restaurant Service

Data access for a tenant's dashboard and for the customer menu:
orders, menu items, stats and reports. Every write commits, refreshes
the row and then publishes a change event so open live lists refetch.
A feed outage after the commit is logged; the write still stands.

Status changes go through app.services.order_workflow; an invalid change
comes back as a failed TransitionResult and nothing is written.

Version: 1.0.0
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.exceptions import NotFoundError, StoreError, ValidationError
from app.core.helpers import generate_order_number
from app.models import MenuItem, Order, OrderStatus, Restaurant
from app.services.cart import ComposedOrder
from app.services.order_workflow import TransitionResult, transition_order
from app.services.realtime import (
    BaseChangeFeed,
    ChangeEvent,
    ChangeScope,
    LiveQuery,
    get_change_feed,
    publish_change,
)

logger = logging.getLogger(__name__)

MENU_ITEM_FIELDS = (
    "name",
    "description",
    "base_price",
    "category",
    "image_url",
    "is_available",
    "sizes",
    "addons",
)

# Orders that count towards revenue
REVENUE_STATUSES = (OrderStatus.ACCEPTED, OrderStatus.COMPLETED)

TOP_ITEMS_LIMIT = 5
DAILY_REVENUE_DAYS = 14


async def _commit(db: AsyncSession, *rows: Any) -> None:
    """Commit and reload server-generated columns, or roll back and raise StoreError."""
    try:
        await db.commit()
        for row in rows:
            await db.refresh(row)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Store error: {e}")
        raise StoreError("Could not save your changes, please try again") from e


async def _publish(feed: Optional[BaseChangeFeed], event: ChangeEvent) -> None:
    await publish_change(event, feed)


# =============================================================================
# RESTAURANTS
# =============================================================================

async def get_restaurant(db: AsyncSession, restaurant_id: int) -> Restaurant:
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise NotFoundError(f"Restaurant #{restaurant_id} not found")
    return restaurant


async def get_restaurant_by_slug(db: AsyncSession, slug: str) -> Restaurant:
    """
    Resolve the tenant behind a QR menu link.

    Raises:
        NotFoundError: unknown slug or blocked tenant
    """
    result = await db.execute(select(Restaurant).where(Restaurant.slug == slug))
    restaurant = result.scalar_one_or_none()
    if restaurant is None or not restaurant.is_active:
        raise NotFoundError(f"Restaurant '{slug}' not found")
    return restaurant


async def get_public_menu(db: AsyncSession, slug: str) -> tuple[Restaurant, list[MenuItem]]:
    """Restaurant + its currently available menu items."""
    restaurant = await get_restaurant_by_slug(db, slug)
    items = await list_menu_items(db, restaurant.id, available_only=True)
    return restaurant, items


# =============================================================================
# ORDERS
# =============================================================================

async def list_orders(
    db: AsyncSession,
    restaurant_id: int,
    status: Optional[OrderStatus] = None,
) -> list[Order]:
    """A tenant's orders, newest first."""
    query = (
        select(Order)
        .where(Order.restaurant_id == restaurant_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if status is not None:
        query = query.where(Order.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_order(db: AsyncSession, restaurant_id: int, order_id: int) -> Order:
    order = await db.get(Order, order_id)
    if order is None or order.restaurant_id != restaurant_id:
        raise NotFoundError(f"Order #{order_id} not found")
    return order


async def create_order(
    db: AsyncSession,
    restaurant_id: int,
    composed: ComposedOrder,
    feed: Optional[BaseChangeFeed] = None,
) -> Order:
    """
    Store a composed order as a single row.

    The row either lands whole or not at all; a failure leaves nothing behind.
    """
    order = Order(
        restaurant_id=restaurant_id,
        order_number=generate_order_number(),
        order_type=composed.order_type,
        table_number=composed.table_number,
        customer_name=composed.customer_name,
        customer_phone=composed.customer_phone,
        customer_notes=composed.customer_notes,
        items=list(composed.items),
        subtotal=composed.subtotal,
        tax=composed.tax,
        total=composed.total,
        status=OrderStatus.PENDING,
    )
    db.add(order)
    await _commit(db, order)

    logger.info(f"Order {order.order_number} placed for restaurant #{restaurant_id}")
    await _publish(feed, ChangeEvent(
        table="orders",
        action="insert",
        row_id=order.id,
        values={"restaurant_id": restaurant_id, "status": order.status.value},
    ))
    return order


async def update_order_status(
    db: AsyncSession,
    restaurant_id: int,
    order_id: int,
    status: OrderStatus,
    reason: Optional[str] = None,
    feed: Optional[BaseChangeFeed] = None,
) -> tuple[Order, TransitionResult]:
    """
    Move an order through the workflow.

    Returns:
        (order, result); when ``result.success`` is False nothing was written
    """
    order = await get_order(db, restaurant_id, order_id)
    result = transition_order(order, status, reason=reason)

    if not result.success:
        logger.warning(f"Order {order.order_number}: {result.error_message}")
        return order, result

    await _commit(db, order)
    logger.info(
        f"Order {order.order_number}: {result.previous.value} -> {result.status.value}"
    )
    await _publish(feed, ChangeEvent(
        table="orders",
        action="update",
        row_id=order.id,
        values={"restaurant_id": restaurant_id, "status": result.status.value},
        previous={"restaurant_id": restaurant_id, "status": result.previous.value},
    ))
    return order, result


# =============================================================================
# MENU ITEMS
# =============================================================================

def _clean_options(options: Optional[list], label: str) -> list[dict]:
    cleaned = []
    seen = set()
    for option in options or []:
        name = str(option.get("name", "")).strip()
        price = option.get("price")
        if not name or price is None or float(price) < 0:
            raise ValidationError({label: f"Every {label[:-1]} needs a name and a non-negative price"})
        if name in seen:
            raise ValidationError({label: f"Duplicate {label[:-1]} '{name}'"})
        seen.add(name)
        cleaned.append({"name": name, "price": float(price)})
    return cleaned


def _validate_menu_fields(data: dict[str, Any], partial: bool = False) -> dict[str, Any]:
    values = {k: v for k, v in data.items() if k in MENU_ITEM_FIELDS}

    if not partial or "name" in values:
        if not str(values.get("name") or "").strip():
            raise ValidationError({"name": "Name and base price are required"})
        values["name"] = values["name"].strip()

    if not partial or "base_price" in values:
        price = values.get("base_price")
        if price is None:
            raise ValidationError({"base_price": "Name and base price are required"})
        if float(price) < 0:
            raise ValidationError({"base_price": "Price cannot be negative"})
        values["base_price"] = float(price)

    if "sizes" in values:
        values["sizes"] = _clean_options(values["sizes"], "sizes")
    if "addons" in values:
        values["addons"] = _clean_options(values["addons"], "addons")
    return values


async def list_menu_items(
    db: AsyncSession,
    restaurant_id: int,
    available_only: bool = False,
) -> list[MenuItem]:
    query = (
        select(MenuItem)
        .where(MenuItem.restaurant_id == restaurant_id)
        .order_by(MenuItem.created_at.desc(), MenuItem.id.desc())
    )
    if available_only:
        query = query.where(MenuItem.is_available.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_menu_item(db: AsyncSession, restaurant_id: int, item_id: int) -> MenuItem:
    item = await db.get(MenuItem, item_id)
    if item is None or item.restaurant_id != restaurant_id:
        raise NotFoundError(f"Menu item #{item_id} not found")
    return item


async def _publish_menu(feed, item: MenuItem, action: str) -> None:
    await _publish(feed, ChangeEvent(
        table="menu_items",
        action=action,
        row_id=item.id,
        values={"restaurant_id": item.restaurant_id},
    ))


async def create_menu_item(
    db: AsyncSession,
    restaurant_id: int,
    data: dict[str, Any],
    feed: Optional[BaseChangeFeed] = None,
) -> MenuItem:
    values = _validate_menu_fields(data)
    values.setdefault("sizes", [])
    values.setdefault("addons", [])

    item = MenuItem(restaurant_id=restaurant_id, **values)
    db.add(item)
    await _commit(db, item)

    logger.info(f"Menu item #{item.id} '{item.name}' created for restaurant #{restaurant_id}")
    await _publish_menu(feed, item, "insert")
    return item


async def update_menu_item(
    db: AsyncSession,
    restaurant_id: int,
    item_id: int,
    updates: dict[str, Any],
    feed: Optional[BaseChangeFeed] = None,
) -> MenuItem:
    item = await get_menu_item(db, restaurant_id, item_id)
    for key, value in _validate_menu_fields(updates, partial=True).items():
        setattr(item, key, value)

    await _commit(db, item)
    logger.info(f"Menu item #{item.id} updated")
    await _publish_menu(feed, item, "update")
    return item


async def toggle_menu_item_availability(
    db: AsyncSession,
    restaurant_id: int,
    item_id: int,
    is_available: bool,
    feed: Optional[BaseChangeFeed] = None,
) -> MenuItem:
    return await update_menu_item(
        db, restaurant_id, item_id, {"is_available": is_available}, feed=feed
    )


async def delete_menu_item(
    db: AsyncSession,
    restaurant_id: int,
    item_id: int,
    feed: Optional[BaseChangeFeed] = None,
) -> None:
    item = await get_menu_item(db, restaurant_id, item_id)
    await db.delete(item)
    await _commit(db)

    logger.info(f"Menu item #{item_id} deleted")
    await _publish_menu(feed, item, "delete")


# =============================================================================
# STATS & REPORTS
# =============================================================================

def _start_of_today() -> datetime:
    return datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


async def get_restaurant_stats(db: AsyncSession, restaurant_id: int) -> dict[str, Any]:
    """Dashboard counters."""
    today = await db.execute(
        select(Order.total, Order.status).where(
            Order.restaurant_id == restaurant_id,
            Order.created_at >= _start_of_today(),
        )
    )
    today_rows = today.all()

    pending = await db.execute(
        select(func.count(Order.id)).where(
            Order.restaurant_id == restaurant_id,
            Order.status == OrderStatus.PENDING,
        )
    )
    total = await db.execute(
        select(func.count(Order.id)).where(Order.restaurant_id == restaurant_id)
    )

    completed_today = [row for row in today_rows if row.status == OrderStatus.COMPLETED]
    return {
        "pending_orders": pending.scalar() or 0,
        "completed_today": len(completed_today),
        "revenue_today": round(sum(row.total or 0 for row in completed_today), 2),
        "total_orders": total.scalar() or 0,
    }


def build_sales_report(orders: list[Order], days: int) -> dict[str, Any]:
    """
    Aggregate revenue-bearing orders into report figures.

    Returns:
        total_revenue, total_orders, avg_order_value, top_items (by revenue),
        daily_revenue (last 14 days with orders), order_type_distribution
    """
    total_revenue = sum(order.total or 0 for order in orders)
    total_orders = len(orders)

    item_stats: dict[str, dict[str, float]] = defaultdict(lambda: {"count": 0, "revenue": 0.0})
    daily: dict[str, dict[str, float]] = defaultdict(lambda: {"revenue": 0.0, "orders": 0})
    type_counts: dict[str, int] = defaultdict(int)

    for order in orders:
        for item in order.items or []:
            stats = item_stats[item["name"]]
            stats["count"] += item.get("quantity", 0)
            stats["revenue"] += item.get("item_total", 0.0)

        day = order.created_at.date().isoformat() if order.created_at else "unknown"
        daily[day]["revenue"] += order.total or 0
        daily[day]["orders"] += 1

        type_counts[order.order_type.value if order.order_type else "unknown"] += 1

    top_items = sorted(
        ({"name": name, **stats} for name, stats in item_stats.items()),
        key=lambda entry: entry["revenue"],
        reverse=True,
    )[:TOP_ITEMS_LIMIT]

    daily_revenue = [
        {"date": day, "revenue": round(stats["revenue"], 2), "orders": stats["orders"]}
        for day, stats in sorted(daily.items())
    ][-DAILY_REVENUE_DAYS:]

    return {
        "days": days,
        "total_revenue": round(total_revenue, 2),
        "total_orders": total_orders,
        "avg_order_value": round(total_revenue / total_orders, 2) if total_orders else 0.0,
        "top_items": top_items,
        "daily_revenue": daily_revenue,
        "order_type_distribution": [
            {"type": order_type, "count": count}
            for order_type, count in sorted(type_counts.items())
        ],
    }


async def get_sales_report(db: AsyncSession, restaurant_id: int, days: int = 30) -> dict[str, Any]:
    """Sales report over the last ``days`` days."""
    start = datetime.now(timezone.utc) - timedelta(days=days)
    result = await db.execute(
        select(Order).where(
            Order.restaurant_id == restaurant_id,
            Order.created_at >= start,
            Order.status.in_(REVENUE_STATUSES),
        ).order_by(Order.created_at)
    )
    return build_sales_report(list(result.scalars().all()), days)


# =============================================================================
# LIVE LISTS
# =============================================================================

def orders_live_query(
    session_factory: async_sessionmaker,
    restaurant_id: int,
    on_change: Callable[[list[Order]], Any],
    feed: Optional[BaseChangeFeed] = None,
) -> LiveQuery:
    """Live list of one restaurant's orders (call ``start()`` on the result)."""

    async def fetch() -> list[Order]:
        async with session_factory() as db:
            return await list_orders(db, restaurant_id)

    return LiveQuery(
        feed or get_change_feed(),
        ChangeScope("orders", "restaurant_id", restaurant_id),
        fetch,
        on_change,
        debounce=get_settings().live_list_debounce_seconds,
    )


def menu_live_query(
    session_factory: async_sessionmaker,
    restaurant_id: int,
    on_change: Callable[[list[MenuItem]], Any],
    available_only: bool = False,
    feed: Optional[BaseChangeFeed] = None,
) -> LiveQuery:
    """Live list of one restaurant's menu (dashboard, or customer view when available_only)."""

    async def fetch() -> list[MenuItem]:
        async with session_factory() as db:
            return await list_menu_items(db, restaurant_id, available_only=available_only)

    return LiveQuery(
        feed or get_change_feed(),
        ChangeScope("menu_items", "restaurant_id", restaurant_id),
        fetch,
        on_change,
        debounce=get_settings().live_list_debounce_seconds,
    )
