"""
FastAPI Application Entry Point

Multi-tenant QR ordering platform.

Endpoints:
    Public
        - POST /api/registrations: Restaurant registration form
        - GET  /api/menu/{slug}: Customer menu (QR code target)
        - GET  /api/menu/{slug}/stream: Live customer menu (SSE)
        - POST /api/menu/{slug}/orders: Customer checkout
    Auth
        - POST /api/auth/login, /api/admin/login
        - POST /api/auth/refresh, /api/auth/logout
    Restaurant dashboard (restaurant session)
        - /api/restaurant/orders[...]: list, stream, status changes
        - /api/restaurant/menu[...]: CRUD, availability, stream
        - /api/restaurant/stats, /api/restaurant/reports[/export]
    Admin (admin session)
        - /api/admin/registrations[...]: review, approve, reject, stream
        - /api/admin/restaurants[...]: list, block, unblock, stream
        - /api/admin/stats
    - GET /health: System health check

Version: 1.0.0
"""

import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from kombu.exceptions import OperationalError as BrokerError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from app.core.config import get_settings, setup_logging
from app.core.exceptions import (
    AppError,
    InvalidTransitionError,
    StoreError,
    ValidationError,
)
from app.database import async_session_maker, engine, get_db, init_db
from app.models import OrderStatus, RegistrationStatus
from app.schemas import (
    AccountCreatedResponse,
    ApproveRegistrationRequest,
    AvailabilityUpdate,
    BlockRestaurantRequest,
    CartLineRequest,
    CheckoutRequest,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PlatformStatsResponse,
    PublicMenuResponse,
    PublicRestaurantResponse,
    RegistrationCreate,
    RegistrationNotesUpdate,
    RegistrationResponse,
    RejectRegistrationRequest,
    ReportExportResponse,
    RestaurantResponse,
    RestaurantStatsResponse,
    SalesReportResponse,
    SessionResponse,
)
from app.services import admin_service, restaurant_service
from app.services.auth import (
    authenticate_admin,
    authenticate_restaurant_user,
    restaurant_profile,
)
from app.services.cart import Cart, CustomerInfo, submit_order
from app.services.realtime import LiveQuery, NewArrivalDetector, get_change_feed
from app.services.sessions import (
    KIND_ADMIN,
    KIND_RESTAURANT,
    BaseSessionManager,
    Session,
    get_current_session,
    get_session_manager,
    require_admin,
    require_restaurant_user,
)
from app.tasks import export_sales_report

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.

    Startup fails when the store is not configured, rather than on the
    first request that touches it.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    missing = settings.validate_store_config()
    if missing:
        logger.error(f"❌ Store not configured: {missing}")
        raise RuntimeError(f"Missing or placeholder configuration: {', '.join(missing)}")

    await init_db()
    logger.info("✅ Database initialized")

    feed = get_change_feed()
    logger.info(f"✅ Change Feed: {feed.provider_name}")
    sessions = get_session_manager()
    logger.info(f"✅ Sessions: {sessions.provider_name}")
    logger.info(f"✅ Tax rate: {settings.tax_rate:.2%}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    logger.info("Shutting down...")
    await feed.close()
    await sessions.close()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-tenant restaurant ordering: registration and approval, "
        "menu and order management, and QR-code customer ordering."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def build_cart(menu: dict[int, Any], lines: list[CartLineRequest]) -> Cart:
    """
    Rebuild the customer's cart against the current menu.

    Prices come from the store, never from the client.

    Raises:
        ValidationError: a line refers to an item that is gone or unavailable
        SelectionIncompleteError: missing size / unknown option
    """
    cart = Cart()
    for line in lines:
        item = menu.get(line.menu_item_id)
        if item is None:
            raise ValidationError(
                {"lines": f"Menu item #{line.menu_item_id} is no longer available"}
            )
        cart_line = cart.add(item, size=line.size, addons=line.addons)
        if line.quantity > 1:
            cart.update_quantity(cart_line, line.quantity - 1)
    return cart


def _session_response(session: Session) -> SessionResponse:
    return SessionResponse(**session.to_dict())


def offer_latest(queue: asyncio.Queue, payload: dict[str, Any]) -> None:
    """
    Queue a snapshot for a stream, replacing one the client has not read yet.

    Only the newest snapshot matters to a slow client, but arrival alerts
    from the replaced snapshot are carried over so none is lost.
    """
    if queue.full():
        pending = queue.get_nowait()
        if "new_ids" in pending:
            payload["new_ids"] = list(dict.fromkeys(pending["new_ids"] + payload["new_ids"]))
            payload["alert"] = bool(payload["new_ids"])
    queue.put_nowait(payload)


def _live_stream(
    request: Request,
    build_query: Callable[[Callable], LiveQuery],
    serialize: Callable[[Any], dict],
    detector: Optional[NewArrivalDetector] = None,
) -> StreamingResponse:
    """
    Serve a live list as Server-Sent Events.

    Each event carries the full current snapshot. When a detector is
    given, the event also lists rows that newly arrived (``alert``).
    """
    queue: asyncio.Queue = asyncio.Queue(maxsize=1)

    async def deliver(rows: list) -> None:
        payload: dict[str, Any] = {"items": [serialize(row) for row in rows]}
        if detector is not None:
            arrivals = detector.observe(rows)
            payload["alert"] = bool(arrivals)
            payload["new_ids"] = [row.id for row in arrivals]
        offer_latest(queue, payload)

    live = build_query(deliver)

    async def events():
        try:
            await live.start()
            while not await request.is_disconnected():
                try:
                    payload = await asyncio.wait_for(
                        queue.get(), timeout=settings.live_list_keepalive_seconds
                    )
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"event: snapshot\ndata: {json.dumps(payload, default=str)}\n\n"
        finally:
            await live.close()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


def _order_json(order) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


def _menu_item_json(item) -> dict:
    return MenuItemResponse.model_validate(item).model_dump(mode="json")


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify the store and the change feed are reachable."""

    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    feed_status = "healthy" if await get_change_feed().health_check() else "unhealthy"

    overall = "operational" if db_status == feed_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        change_feed=feed_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post("/api/auth/login", response_model=SessionResponse, tags=["Auth"])
async def restaurant_login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
    manager: BaseSessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Log a restaurant user in."""
    user, restaurant = await authenticate_restaurant_user(
        db, credentials.email, credentials.password
    )
    session = await manager.issue(
        kind=KIND_RESTAURANT,
        principal_id=user.id,
        email=user.email,
        restaurant_id=restaurant.id,
        role=user.role.value,
        temp_password=user.temp_password,
        profile=restaurant_profile(restaurant),
    )
    return _session_response(session)


@app.post("/api/admin/login", response_model=SessionResponse, tags=["Auth"])
async def admin_login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
    manager: BaseSessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Log a platform admin in."""
    admin = await authenticate_admin(db, credentials.email, credentials.password)
    session = await manager.issue(
        kind=KIND_ADMIN,
        principal_id=admin.id,
        email=admin.email,
        profile={"name": admin.name},
    )
    return _session_response(session)


@app.post("/api/auth/refresh", response_model=SessionResponse, tags=["Auth"])
async def refresh_session(
    session: Session = Depends(get_current_session),
    manager: BaseSessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Extend the current session by one TTL."""
    return _session_response(await manager.refresh(session.token))


@app.post("/api/auth/logout", tags=["Auth"])
async def logout(
    session: Session = Depends(get_current_session),
    manager: BaseSessionManager = Depends(get_session_manager),
) -> dict[str, bool]:
    return {"success": await manager.revoke(session.token)}


# =============================================================================
# PUBLIC: REGISTRATION & CUSTOMER ORDERING
# =============================================================================

@app.post(
    "/api/registrations",
    response_model=RegistrationResponse,
    status_code=201,
    responses={422: {"model": ErrorResponse}},
    tags=["Public"],
)
async def register_restaurant(
    form: RegistrationCreate,
    db: AsyncSession = Depends(get_db),
) -> RegistrationResponse:
    """Submit a registration request for review."""
    request = await admin_service.submit_registration(db, form.model_dump())
    return RegistrationResponse.model_validate(request)


@app.get(
    "/api/menu/{slug}",
    response_model=PublicMenuResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Public"],
)
async def public_menu(
    slug: str,
    db: AsyncSession = Depends(get_db),
) -> PublicMenuResponse:
    """Menu behind a restaurant's QR code (available items only)."""
    restaurant, items = await restaurant_service.get_public_menu(db, slug)
    categories = sorted({item.category for item in items if item.category})
    return PublicMenuResponse(
        restaurant=PublicRestaurantResponse.model_validate(restaurant),
        categories=categories,
        items=[MenuItemResponse.model_validate(item) for item in items],
        tax_rate=settings.tax_rate,
        currency_symbol=settings.currency_symbol,
    )


@app.get("/api/menu/{slug}/stream", tags=["Public"])
async def public_menu_stream(
    slug: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> StreamingResponse:
    """Live customer menu: items appear/disappear as availability changes."""
    restaurant = await restaurant_service.get_restaurant_by_slug(db, slug)
    return _live_stream(
        request,
        lambda deliver: restaurant_service.menu_live_query(
            async_session_maker, restaurant.id, deliver, available_only=True
        ),
        _menu_item_json,
    )


@app.post(
    "/api/menu/{slug}/orders",
    response_model=OrderCreateResponse,
    status_code=201,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Public"],
    summary="Customer Checkout",
)
async def place_order(
    slug: str,
    checkout: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
) -> OrderCreateResponse:
    """
    Place an order from the QR menu.

    The cart is rebuilt from the submitted selections and priced with the
    same model the customer page uses; validation runs before anything is
    written.
    """
    restaurant = await restaurant_service.get_restaurant_by_slug(db, slug)
    menu = await restaurant_service.list_menu_items(db, restaurant.id, available_only=True)
    cart = build_cart({item.id: item for item in menu}, checkout.lines)

    customer = CustomerInfo(
        name=checkout.customer_name,
        phone=checkout.customer_phone,
        order_type=checkout.order_type,
        table_number=checkout.table_number,
        notes=checkout.customer_notes,
    )

    async def persist(composed):
        return await restaurant_service.create_order(db, restaurant.id, composed)

    order = await submit_order(cart, customer, persist)

    return OrderCreateResponse(
        success=True,
        message="Your order has been placed successfully!",
        order_id=order.id,
        order_number=order.order_number,
        total=order.total,
    )


# =============================================================================
# RESTAURANT: ORDERS
# =============================================================================

@app.get("/api/restaurant/orders", response_model=OrderListResponse, tags=["Restaurant"])
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """A tenant's orders, newest first, optionally filtered by status."""
    orders = await restaurant_service.list_orders(db, session.restaurant_id)
    pending = sum(1 for order in orders if order.status == OrderStatus.PENDING)
    if status is not None:
        orders = [order for order in orders if order.status == status]
    return OrderListResponse(
        total=len(orders),
        pending=pending,
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get("/api/restaurant/orders/stream", tags=["Restaurant"])
async def orders_stream(
    request: Request,
    session: Session = Depends(require_restaurant_user),
) -> StreamingResponse:
    """Live order list; ``alert`` is set when new pending orders arrive."""
    restaurant_id = session.restaurant_id
    return _live_stream(
        request,
        lambda deliver: restaurant_service.orders_live_query(
            async_session_maker, restaurant_id, deliver
        ),
        _order_json,
        detector=NewArrivalDetector(lambda order: order.status == OrderStatus.PENDING),
    )


@app.get("/api/restaurant/orders/{order_id}", response_model=OrderResponse, tags=["Restaurant"])
async def get_order(
    order_id: int,
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await restaurant_service.get_order(db, session.restaurant_id, order_id)
    return OrderResponse.model_validate(order)


@app.post(
    "/api/restaurant/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={409: {"model": ErrorResponse}},
    tags=["Restaurant"],
)
async def change_order_status(
    order_id: int,
    update: OrderStatusUpdate,
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Accept, complete, reject or cancel an order."""
    order, result = await restaurant_service.update_order_status(
        db, session.restaurant_id, order_id, update.status, reason=update.reason
    )
    if not result.success:
        raise InvalidTransitionError(result.error_message, detail=result.to_dict())
    return OrderResponse.model_validate(order)


# =============================================================================
# RESTAURANT: MENU
# =============================================================================

@app.get("/api/restaurant/menu", response_model=list[MenuItemResponse], tags=["Restaurant"])
async def list_menu(
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> list[MenuItemResponse]:
    items = await restaurant_service.list_menu_items(db, session.restaurant_id)
    return [MenuItemResponse.model_validate(item) for item in items]


@app.get("/api/restaurant/menu/stream", tags=["Restaurant"])
async def menu_stream(
    request: Request,
    session: Session = Depends(require_restaurant_user),
) -> StreamingResponse:
    restaurant_id = session.restaurant_id
    return _live_stream(
        request,
        lambda deliver: restaurant_service.menu_live_query(
            async_session_maker, restaurant_id, deliver
        ),
        _menu_item_json,
    )


@app.post(
    "/api/restaurant/menu",
    response_model=MenuItemResponse,
    status_code=201,
    tags=["Restaurant"],
)
async def create_menu_item(
    data: MenuItemCreate,
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    item = await restaurant_service.create_menu_item(
        db, session.restaurant_id, data.model_dump()
    )
    return MenuItemResponse.model_validate(item)


@app.patch("/api/restaurant/menu/{item_id}", response_model=MenuItemResponse, tags=["Restaurant"])
async def update_menu_item(
    item_id: int,
    updates: MenuItemUpdate,
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    item = await restaurant_service.update_menu_item(
        db, session.restaurant_id, item_id, updates.model_dump(exclude_unset=True)
    )
    return MenuItemResponse.model_validate(item)


@app.put(
    "/api/restaurant/menu/{item_id}/availability",
    response_model=MenuItemResponse,
    tags=["Restaurant"],
)
async def set_menu_item_availability(
    item_id: int,
    update: AvailabilityUpdate,
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    item = await restaurant_service.toggle_menu_item_availability(
        db, session.restaurant_id, item_id, update.is_available
    )
    return MenuItemResponse.model_validate(item)


@app.delete("/api/restaurant/menu/{item_id}", status_code=204, tags=["Restaurant"])
async def delete_menu_item(
    item_id: int,
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    await restaurant_service.delete_menu_item(db, session.restaurant_id, item_id)


# =============================================================================
# RESTAURANT: STATS & REPORTS
# =============================================================================

@app.get("/api/restaurant/stats", response_model=RestaurantStatsResponse, tags=["Restaurant"])
async def restaurant_stats(
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> RestaurantStatsResponse:
    stats = await restaurant_service.get_restaurant_stats(db, session.restaurant_id)
    return RestaurantStatsResponse(**stats)


@app.get("/api/restaurant/reports", response_model=SalesReportResponse, tags=["Restaurant"])
async def sales_report(
    days: int = Query(30, ge=1, le=365),
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> SalesReportResponse:
    report = await restaurant_service.get_sales_report(db, session.restaurant_id, days)
    return SalesReportResponse(**report)


@app.post(
    "/api/restaurant/reports/export",
    response_model=ReportExportResponse,
    status_code=202,
    tags=["Restaurant"],
)
async def export_report(
    days: int = Query(30, ge=1, le=365),
    session: Session = Depends(require_restaurant_user),
    db: AsyncSession = Depends(get_db),
) -> ReportExportResponse:
    """Queue an Excel export of the sales report."""
    report = await restaurant_service.get_sales_report(db, session.restaurant_id, days)
    try:
        task = export_sales_report.delay(session.restaurant_id, report)
    except BrokerError as e:
        logger.error(f"Could not queue report export: {e}")
        raise StoreError("Report export is unavailable right now, please try again")

    return ReportExportResponse(
        success=True,
        message="Report export queued",
        task_id=task.id,
    )


# =============================================================================
# ADMIN: REGISTRATIONS
# =============================================================================

@app.get(
    "/api/admin/registrations",
    response_model=list[RegistrationResponse],
    tags=["Admin"],
)
async def list_registrations(
    status: Optional[RegistrationStatus] = Query(RegistrationStatus.PENDING),
    _: Session = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[RegistrationResponse]:
    requests = await admin_service.list_registration_requests(db, status)
    return [RegistrationResponse.model_validate(r) for r in requests]


@app.get("/api/admin/registrations/stream", tags=["Admin"])
async def registrations_stream(
    request: Request,
    _: Session = Depends(require_admin),
) -> StreamingResponse:
    """Live list of pending registration requests."""
    return _live_stream(
        request,
        lambda deliver: admin_service.pending_requests_live_query(async_session_maker, deliver),
        lambda r: RegistrationResponse.model_validate(r).model_dump(mode="json"),
        detector=NewArrivalDetector(),
    )


@app.post(
    "/api/admin/registrations/{request_id}/approve",
    response_model=AccountCreatedResponse,
    responses={409: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def approve_registration(
    request_id: int,
    approval: ApproveRegistrationRequest,
    _: Session = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AccountCreatedResponse:
    """
    Create the tenant account from a pending request.

    The generated credentials are returned for the admin to pass on.
    """
    result = await admin_service.create_restaurant_account(
        db,
        request_id,
        email=approval.email,
        subscription_plan=approval.subscription_plan,
        internal_notes=approval.internal_notes,
    )
    if not result.success:
        raise InvalidTransitionError(result.error_message or "Failed to create account")

    return AccountCreatedResponse(
        success=True,
        restaurant_id=result.restaurant_id,
        restaurant_name=result.restaurant_name,
        slug=result.slug,
        credentials=result.credentials,
    )


@app.post(
    "/api/admin/registrations/{request_id}/reject",
    response_model=RegistrationResponse,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def reject_registration(
    request_id: int,
    rejection: RejectRegistrationRequest,
    _: Session = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RegistrationResponse:
    result = await admin_service.reject_registration_request(db, request_id, rejection.reason)
    if not result.success:
        if result.error_code == "reason_required":
            raise ValidationError({"reason": result.error_message})
        raise InvalidTransitionError(result.error_message, detail=result.to_dict())
    request = await admin_service.get_registration_request(db, request_id)
    return RegistrationResponse.model_validate(request)


@app.patch(
    "/api/admin/registrations/{request_id}/notes",
    response_model=RegistrationResponse,
    tags=["Admin"],
)
async def update_registration_notes(
    request_id: int,
    update: RegistrationNotesUpdate,
    _: Session = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RegistrationResponse:
    request = await admin_service.update_registration_notes(db, request_id, update.internal_notes)
    return RegistrationResponse.model_validate(request)


# =============================================================================
# ADMIN: RESTAURANTS
# =============================================================================

@app.get("/api/admin/restaurants", response_model=list[RestaurantResponse], tags=["Admin"])
async def list_restaurants(
    _: Session = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[RestaurantResponse]:
    restaurants = await admin_service.list_restaurants(db)
    return [RestaurantResponse.model_validate(r) for r in restaurants]


@app.get("/api/admin/restaurants/stream", tags=["Admin"])
async def restaurants_stream(
    request: Request,
    _: Session = Depends(require_admin),
) -> StreamingResponse:
    return _live_stream(
        request,
        lambda deliver: admin_service.restaurants_live_query(async_session_maker, deliver),
        lambda r: RestaurantResponse.model_validate(r).model_dump(mode="json"),
    )


@app.post(
    "/api/admin/restaurants/{restaurant_id}/block",
    response_model=RestaurantResponse,
    responses={409: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def block_restaurant(
    restaurant_id: int,
    body: BlockRestaurantRequest,
    _: Session = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    manager: BaseSessionManager = Depends(get_session_manager),
) -> RestaurantResponse:
    """Block a tenant; its users are logged out."""
    restaurant = await admin_service.block_restaurant(db, restaurant_id, reason=body.reason)
    revoked = await manager.revoke_restaurant(restaurant_id)
    if revoked:
        logger.info(f"Revoked {revoked} session(s) of restaurant #{restaurant_id}")
    return RestaurantResponse.model_validate(restaurant)


@app.post(
    "/api/admin/restaurants/{restaurant_id}/unblock",
    response_model=RestaurantResponse,
    responses={409: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def unblock_restaurant(
    restaurant_id: int,
    _: Session = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RestaurantResponse:
    restaurant = await admin_service.unblock_restaurant(db, restaurant_id)
    return RestaurantResponse.model_validate(restaurant)


@app.get("/api/admin/stats", response_model=PlatformStatsResponse, tags=["Admin"])
async def platform_stats(
    _: Session = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PlatformStatsResponse:
    stats = await admin_service.get_platform_stats(db)
    return PlatformStatsResponse(**stats)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render application errors as ErrorResponse."""
    if exc.status_code >= 500:
        logger.warning(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.error_code,
            message=exc.message,
            detail=exc.detail or None,
        ).model_dump(),
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database failures are retryable from the user's point of view."""
    logger.error(f"Store error on {request.url.path}: {exc}")
    return await app_error_handler(
        request, StoreError("Something went wrong, please try again")
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "message": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
