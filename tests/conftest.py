"""
Shared fixtures.

The suite runs against an in-memory SQLite database and the in-process
change feed; both are rebuilt for every test.
"""

import os

# Must be set before anything imports app.core.config
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LIVE_LIST_DEBOUNCE_SECONDS"] = "0"
os.environ["DEBUG"] = "false"

from types import SimpleNamespace

import httpx
import pytest

from app.core.helpers import hash_password
from app.database import Base, async_session_maker, engine
from app.models import (
    AdminUser,
    MenuItem,
    RegistrationRequest,
    RegistrationStatus,
    Restaurant,
    RestaurantStatus,
    SubscriptionPlan,
    User,
    UserRole,
)
from app.services.realtime import get_change_feed, reset_change_feed
from app.services.sessions import reset_session_manager

OWNER_PASSWORD = "owner-pass-1"
ADMIN_PASSWORD = "admin-pass-1"


@pytest.fixture(autouse=True)
def fresh_singletons():
    reset_change_feed()
    reset_session_manager()
    yield
    reset_change_feed()
    reset_session_manager()


@pytest.fixture
def feed():
    """The process change feed (InMemoryChangeFeed in development)."""
    return get_change_feed()


@pytest.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
async def client(db):
    from app.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# =============================================================================
# DATA BUILDERS
# =============================================================================

@pytest.fixture
def pizza() -> SimpleNamespace:
    """A menu item shaped like the stored row, without touching the database."""
    return SimpleNamespace(
        id=1,
        name="Margherita Pizza",
        base_price=100.0,
        sizes=[{"name": "Regular", "price": 100.0}, {"name": "Large", "price": 150.0}],
        addons=[{"name": "Extra Cheese", "price": 20.0}, {"name": "Olives", "price": 15.0}],
    )


@pytest.fixture
def chai() -> SimpleNamespace:
    return SimpleNamespace(id=2, name="Masala Chai", base_price=60.0, sizes=[], addons=[])


@pytest.fixture
def make_restaurant(db):
    async def _make(
        name: str = "Tasty Bites",
        slug: str = "tasty-bites",
        email: str = "owner@tastybites.in",
        status: RestaurantStatus = RestaurantStatus.ACTIVE,
    ) -> Restaurant:
        restaurant = Restaurant(
            name=name,
            slug=slug,
            phone="9876543210",
            email=email,
            city="Pune",
            subscription_plan=SubscriptionPlan.STARTER,
            status=status,
        )
        db.add(restaurant)
        await db.flush()
        db.add(User(
            restaurant_id=restaurant.id,
            email=email,
            password_hash=hash_password(OWNER_PASSWORD),
            temp_password=False,
            role=UserRole.OWNER,
        ))
        await db.commit()
        await db.refresh(restaurant)
        return restaurant

    return _make


@pytest.fixture
def make_menu_item(db):
    async def _make(restaurant_id: int, **overrides) -> MenuItem:
        values = {
            "name": "Margherita Pizza",
            "base_price": 100.0,
            "category": "Main Course",
            "is_available": True,
            "sizes": [{"name": "Regular", "price": 100.0}, {"name": "Large", "price": 150.0}],
            "addons": [{"name": "Extra Cheese", "price": 20.0}],
        }
        values.update(overrides)
        item = MenuItem(restaurant_id=restaurant_id, **values)
        db.add(item)
        await db.commit()
        await db.refresh(item)
        return item

    return _make


@pytest.fixture
def make_registration(db):
    async def _make(**overrides) -> RegistrationRequest:
        values = {
            "restaurant_name": "Spice Route",
            "owner_name": "Asha Rao",
            "phone": "9123456780",
            "email": "asha@spiceroute.in",
            "city": "Mumbai",
            "restaurant_type": "Cafe",
            "status": RegistrationStatus.PENDING,
        }
        values.update(overrides)
        request = RegistrationRequest(**values)
        db.add(request)
        await db.commit()
        await db.refresh(request)
        return request

    return _make


@pytest.fixture
async def admin(db) -> AdminUser:
    user = AdminUser(
        email="admin@foodorder.in",
        name="Platform Admin",
        password_hash=hash_password(ADMIN_PASSWORD),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def admin_headers(client, admin) -> dict[str, str]:
    response = await client.post(
        "/api/admin/login", json={"email": admin.email, "password": ADMIN_PASSWORD}
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
async def restaurant(make_restaurant) -> Restaurant:
    return await make_restaurant()


@pytest.fixture
async def owner_headers(client, restaurant) -> dict[str, str]:
    response = await client.post(
        "/api/auth/login", json={"email": restaurant.email, "password": OWNER_PASSWORD}
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
