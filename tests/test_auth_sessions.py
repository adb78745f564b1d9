import json
from datetime import datetime, timedelta, timezone

import pytest

from app.core.config import Settings
from app.core.exceptions import AuthenticationError, ValidationError
from app.models import RestaurantStatus
from app.services.auth import authenticate_admin, authenticate_restaurant_user
from app.services import sessions
from app.services.sessions import (
    KIND_ADMIN,
    KIND_RESTAURANT,
    InMemorySessionManager,
    RedisSessionManager,
    Session,
    get_session_manager,
)


# =============================================================================
# LOGIN
# =============================================================================

async def test_restaurant_login_is_case_insensitive_on_email(db, restaurant):
    user, found = await authenticate_restaurant_user(db, " OWNER@TastyBites.in ", "owner-pass-1")

    assert user.email == "owner@tastybites.in"
    assert found.id == restaurant.id


async def test_wrong_password(db, restaurant):
    with pytest.raises(AuthenticationError) as exc_info:
        await authenticate_restaurant_user(db, "owner@tastybites.in", "wrong")
    assert exc_info.value.reason == AuthenticationError.INVALID_CREDENTIALS
    assert exc_info.value.status_code == 401


async def test_pending_registration_gets_its_own_reason(db, make_registration):
    await make_registration(email="asha@spiceroute.in")

    with pytest.raises(AuthenticationError) as exc_info:
        await authenticate_restaurant_user(db, "asha@spiceroute.in", "anything")
    assert exc_info.value.reason == AuthenticationError.PENDING_VERIFICATION


async def test_blocked_restaurant_cannot_log_in(db, make_restaurant):
    await make_restaurant(status=RestaurantStatus.BLOCKED)

    with pytest.raises(AuthenticationError) as exc_info:
        await authenticate_restaurant_user(db, "owner@tastybites.in", "owner-pass-1")
    assert exc_info.value.error_code == AuthenticationError.ACCOUNT_DEACTIVATED


async def test_login_form_is_checked_first(db):
    with pytest.raises(ValidationError):
        await authenticate_restaurant_user(db, "", "")
    with pytest.raises(ValidationError):
        await authenticate_restaurant_user(db, "owner", "pw")


async def test_admin_login(db, admin):
    found = await authenticate_admin(db, "admin@foodorder.in", "admin-pass-1")
    assert found.id == admin.id

    with pytest.raises(AuthenticationError):
        await authenticate_admin(db, "admin@foodorder.in", "owner-pass-1")


# =============================================================================
# SESSIONS
# =============================================================================

def memory_manager() -> InMemorySessionManager:
    return InMemorySessionManager(ttl=timedelta(minutes=30))


async def test_issue_and_get():
    manager = memory_manager()
    session = await manager.issue(KIND_RESTAURANT, principal_id=1, email="o@x.in", restaurant_id=7)

    assert await manager.get(session.token) is session
    assert session.expires_at - session.issued_at == timedelta(minutes=30)
    assert await manager.get("unknown") is None


async def test_expired_session_is_dropped():
    manager = memory_manager()
    session = await manager.issue(KIND_ADMIN, principal_id=1, email="a@x.in")
    later = datetime.now(timezone.utc) + timedelta(minutes=31)

    assert await manager.get(session.token, now=later) is None
    assert await manager.get(session.token) is None


async def test_abandoned_sessions_are_purged_on_issue():
    manager = memory_manager()
    start = datetime.now(timezone.utc)
    for principal_id in range(3):
        await manager.issue(KIND_ADMIN, principal_id=principal_id, email="a@x.in", now=start)

    latest = await manager.issue(
        KIND_ADMIN, principal_id=9, email="a@x.in", now=start + timedelta(minutes=31)
    )

    assert manager.session_count == 1
    assert await manager.get(latest.token, now=start + timedelta(minutes=32)) is latest


async def test_refresh_extends_expiry():
    manager = memory_manager()
    session = await manager.issue(KIND_ADMIN, principal_id=1, email="a@x.in")
    later = datetime.now(timezone.utc) + timedelta(minutes=20)

    refreshed = await manager.refresh(session.token, now=later)

    assert refreshed.expires_at == later + timedelta(minutes=30)
    assert await manager.get(session.token, now=later + timedelta(minutes=25)) is session


async def test_revoke_restaurant_drops_only_that_tenant():
    manager = memory_manager()
    first = await manager.issue(KIND_RESTAURANT, principal_id=1, email="a@x.in", restaurant_id=7)
    second = await manager.issue(KIND_RESTAURANT, principal_id=2, email="b@x.in", restaurant_id=7)
    other = await manager.issue(KIND_RESTAURANT, principal_id=3, email="c@x.in", restaurant_id=8)

    assert await manager.revoke_restaurant(7) == 2

    assert await manager.get(first.token) is None
    assert await manager.get(second.token) is None
    assert await manager.get(other.token) is other


async def test_revoke_single_session():
    manager = memory_manager()
    session = await manager.issue(KIND_ADMIN, principal_id=1, email="a@x.in")

    assert await manager.revoke(session.token)
    assert not await manager.revoke(session.token)


async def test_session_survives_serialization():
    manager = memory_manager()
    session = await manager.issue(
        KIND_RESTAURANT, principal_id=1, email="o@x.in", restaurant_id=7,
        role="owner", temp_password=True, profile={"slug": "tasty-bites"},
    )

    assert Session.from_dict(json.loads(json.dumps(session.to_dict()))) == session


def test_development_keeps_sessions_in_memory():
    manager = get_session_manager()
    assert isinstance(manager, InMemorySessionManager)
    assert manager.provider_name == "memory"


def test_production_shares_sessions_through_redis(monkeypatch):
    monkeypatch.setattr(
        sessions, "get_settings",
        lambda: Settings(env_mode="production", redis_url="redis://cache:6379/1", session_ttl_minutes=45),
    )

    manager = sessions.get_session_manager()

    assert isinstance(manager, RedisSessionManager)
    assert manager.ttl == timedelta(minutes=45)
    assert manager.redis_url == "redis://cache:6379/1"
    assert RedisSessionManager.key_for("abc") == "session:abc"
    assert RedisSessionManager.tenant_key_for(7) == "sessions:restaurant:7"
