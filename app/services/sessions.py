"""
Session Management

Logged-in principals (platform admins and restaurant users) are held as
explicit Session objects with an expiry. The API hands out an opaque
bearer token; routes receive the Session through FastAPI dependencies
instead of trusting a blob stored by the browser.

Environment Switching:
    - ENV_MODE=development → InMemorySessionManager (single process)
    - ENV_MODE=staging → RedisSessionManager
    - ENV_MODE=production → RedisSessionManager

Redis keeps one key per session with the session's remaining lifetime
as TTL, so every API worker sees the same logins and a revoked tenant is
logged out everywhere.

Usage:
    @app.get("/api/restaurant/orders")
    async def orders(session: Session = Depends(require_restaurant_user)):
        ...

Version: 1.0.0
"""

import json
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header

from app.core.config import get_settings
from app.core.exceptions import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)

KIND_ADMIN = "admin"
KIND_RESTAURANT = "restaurant"

SESSION_KEY_PREFIX = "session:"
TENANT_KEY_PREFIX = "sessions:restaurant:"


@dataclass
class Session:
    """
    An authenticated principal.

    Attributes:
        token: Opaque bearer token
        kind: "admin" or "restaurant"
        principal_id: users.id or admin_users.id
        email: Login email
        restaurant_id: Tenant the user belongs to (restaurant sessions only)
        role: "owner" / "staff" for restaurant users
        temp_password: True until the user changes the generated password
        expires_at: After this instant the session is no longer accepted
    """
    token: str
    kind: str
    principal_id: int
    email: str
    expires_at: datetime
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    restaurant_id: Optional[int] = None
    role: Optional[str] = None
    temp_password: bool = False
    profile: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "kind": self.kind,
            "principal_id": self.principal_id,
            "email": self.email,
            "restaurant_id": self.restaurant_id,
            "role": self.role,
            "temp_password": self.temp_password,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "profile": self.profile,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        return cls(
            token=data["token"],
            kind=data["kind"],
            principal_id=data["principal_id"],
            email=data["email"],
            restaurant_id=data.get("restaurant_id"),
            role=data.get("role"),
            temp_password=data.get("temp_password", False),
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            profile=data.get("profile") or {},
        )


# =============================================================================
# SESSION MANAGERS
# =============================================================================

class BaseSessionManager(ABC):
    """
    Issues, refreshes and revokes sessions.

    Subclasses only provide storage; expiry rules live here.
    """

    def __init__(self, ttl: timedelta):
        self.ttl = ttl

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def _store(self, session: Session, now: datetime) -> None:
        pass

    @abstractmethod
    async def _load(self, token: str) -> Optional[Session]:
        pass

    @abstractmethod
    async def _delete(self, token: str) -> bool:
        pass

    @abstractmethod
    async def _pop_tenant_tokens(self, restaurant_id: int) -> list[str]:
        pass

    async def close(self) -> None:
        pass

    async def issue(
        self,
        kind: str,
        principal_id: int,
        email: str,
        restaurant_id: Optional[int] = None,
        role: Optional[str] = None,
        temp_password: bool = False,
        profile: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Session:
        now = now or datetime.now(timezone.utc)
        session = Session(
            token=secrets.token_urlsafe(32),
            kind=kind,
            principal_id=principal_id,
            email=email,
            issued_at=now,
            expires_at=now + self.ttl,
            restaurant_id=restaurant_id,
            role=role,
            temp_password=temp_password,
            profile=profile or {},
        )
        await self._store(session, now)
        logger.info(f"Session issued: {kind} #{principal_id}")
        return session

    async def get(self, token: str, now: Optional[datetime] = None) -> Optional[Session]:
        """Return the live session for ``token``; expired ones are dropped."""
        session = await self._load(token)
        if session is None:
            return None
        if session.is_expired(now):
            await self._delete(token)
            logger.info(f"Session expired: {session.kind} #{session.principal_id}")
            return None
        return session

    async def refresh(self, token: str, now: Optional[datetime] = None) -> Optional[Session]:
        """Push the expiry of a live session one TTL into the future."""
        now = now or datetime.now(timezone.utc)
        session = await self.get(token, now)
        if session is None:
            return None
        session.expires_at = now + self.ttl
        await self._store(session, now)
        return session

    async def revoke(self, token: str) -> bool:
        return await self._delete(token)

    async def revoke_restaurant(self, restaurant_id: int) -> int:
        """Drop every session of a tenant (used when it gets blocked)."""
        revoked = 0
        for token in await self._pop_tenant_tokens(restaurant_id):
            if await self._delete(token):
                revoked += 1
        return revoked


class InMemorySessionManager(BaseSessionManager):
    """Process-local sessions for development and tests."""

    def __init__(self, ttl: timedelta):
        super().__init__(ttl)
        self._sessions: dict[str, Session] = {}

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def _store(self, session: Session, now: datetime) -> None:
        # Expired sessions are dropped on every write
        self._sessions = {
            token: existing for token, existing in self._sessions.items()
            if not existing.is_expired(now)
        }
        self._sessions[session.token] = session

    async def _load(self, token: str) -> Optional[Session]:
        return self._sessions.get(token)

    async def _delete(self, token: str) -> bool:
        return self._sessions.pop(token, None) is not None

    async def _pop_tenant_tokens(self, restaurant_id: int) -> list[str]:
        return [
            token for token, session in self._sessions.items()
            if session.kind == KIND_RESTAURANT and session.restaurant_id == restaurant_id
        ]


class RedisSessionManager(BaseSessionManager):
    """Sessions shared by every API worker through Redis."""

    def __init__(self, ttl: timedelta, redis_url: Optional[str] = None):
        super().__init__(ttl)
        self.redis_url = redis_url or get_settings().redis_url
        self.client = aioredis.from_url(self.redis_url, decode_responses=True)
        logger.info("RedisSessionManager initialized")

    @property
    def provider_name(self) -> str:
        return "redis"

    @staticmethod
    def key_for(token: str) -> str:
        return f"{SESSION_KEY_PREFIX}{token}"

    @staticmethod
    def tenant_key_for(restaurant_id: int) -> str:
        return f"{TENANT_KEY_PREFIX}{restaurant_id}"

    async def _store(self, session: Session, now: datetime) -> None:
        seconds = max(1, int((session.expires_at - now).total_seconds()))
        await self.client.set(self.key_for(session.token), json.dumps(session.to_dict()), ex=seconds)
        if session.restaurant_id is not None:
            tenant_key = self.tenant_key_for(session.restaurant_id)
            await self.client.sadd(tenant_key, session.token)
            await self.client.expire(tenant_key, int(self.ttl.total_seconds()))

    async def _load(self, token: str) -> Optional[Session]:
        raw = await self.client.get(self.key_for(token))
        if raw is None:
            return None
        return Session.from_dict(json.loads(raw))

    async def _delete(self, token: str) -> bool:
        return bool(await self.client.delete(self.key_for(token)))

    async def _pop_tenant_tokens(self, restaurant_id: int) -> list[str]:
        tenant_key = self.tenant_key_for(restaurant_id)
        tokens = await self.client.smembers(tenant_key)
        await self.client.delete(tenant_key)
        return list(tokens)

    async def close(self) -> None:
        await self.client.aclose()


@lru_cache()
def get_session_manager() -> BaseSessionManager:
    """Get the configured session manager (cached)."""
    settings = get_settings()
    ttl = timedelta(minutes=settings.session_ttl_minutes)

    if settings.is_development:
        logger.info("Sessions: Using InMemorySessionManager (development mode)")
        return InMemorySessionManager(ttl)

    logger.info(f"Sessions: Using RedisSessionManager ({settings.env_mode.value} mode)")
    return RedisSessionManager(ttl, settings.redis_url)


def reset_session_manager() -> None:
    get_session_manager.cache_clear()


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError(
            AuthenticationError.INVALID_CREDENTIALS, "Please log in to continue"
        )
    return authorization.split(" ", 1)[1].strip()


async def get_current_session(
    authorization: Optional[str] = Header(None),
    manager: BaseSessionManager = Depends(get_session_manager),
) -> Session:
    session = await manager.get(_bearer_token(authorization))
    if session is None:
        raise AuthenticationError(
            AuthenticationError.SESSION_EXPIRED, "Your session has expired, please log in again"
        )
    return session


async def require_admin(session: Session = Depends(get_current_session)) -> Session:
    if session.kind != KIND_ADMIN:
        raise PermissionDeniedError("Admin access required")
    return session


async def require_restaurant_user(session: Session = Depends(get_current_session)) -> Session:
    if session.kind != KIND_RESTAURANT or session.restaurant_id is None:
        raise PermissionDeniedError("Restaurant access required")
    return session
