"""
Login

Checks an email + password against users / admin_users. Passwords are
stored as SHA-256 hex digests.

A failed restaurant login tells apart three cases so the login screen can
show the right banner:
    - invalid_credentials: no matching user
    - pending_verification: the email belongs to a registration still under review
    - account_deactivated: the tenant has been blocked

Version: 1.0.0
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, ValidationError
from app.core.helpers import hash_password, is_valid_email
from app.models import (
    AdminUser,
    RegistrationRequest,
    RegistrationStatus,
    Restaurant,
    User,
)

logger = logging.getLogger(__name__)


def _check_login_form(email: str, password: str) -> str:
    if not email or not password:
        raise ValidationError({"form": "Please enter both email and password"})
    if not is_valid_email(email):
        raise ValidationError({"email": "Please enter a valid email address"})
    return email.strip().lower()


async def authenticate_restaurant_user(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, Restaurant]:
    """
    Verify a restaurant user's credentials.

    Returns:
        (user, restaurant) on success

    Raises:
        ValidationError: empty or malformed form
        AuthenticationError: see module docstring for reasons
    """
    email = _check_login_form(email, password)

    result = await db.execute(
        select(User, Restaurant)
        .join(Restaurant, Restaurant.id == User.restaurant_id)
        .where(User.email == email, User.password_hash == hash_password(password))
    )
    row = result.first()

    if row is None:
        pending = await db.execute(
            select(RegistrationRequest.id).where(
                RegistrationRequest.email == email,
                RegistrationRequest.status == RegistrationStatus.PENDING,
            )
        )
        if pending.first() is not None:
            logger.info(f"Login attempt for pending registration: {email}")
            raise AuthenticationError(
                AuthenticationError.PENDING_VERIFICATION,
                "Your registration is still being reviewed. We'll contact you once it's verified.",
            )
        logger.info(f"Invalid login attempt: {email}")
        raise AuthenticationError(
            AuthenticationError.INVALID_CREDENTIALS, "Invalid email or password"
        )

    user, restaurant = row
    if not restaurant.is_active:
        logger.info(f"Login refused for blocked restaurant #{restaurant.id}")
        raise AuthenticationError(
            AuthenticationError.ACCOUNT_DEACTIVATED,
            "Your restaurant account has been deactivated. Please contact support.",
        )

    logger.info(f"Restaurant user #{user.id} logged in (restaurant #{restaurant.id})")
    return user, restaurant


async def authenticate_admin(db: AsyncSession, email: str, password: str) -> AdminUser:
    """Verify a platform admin's credentials."""
    email = _check_login_form(email, password)

    result = await db.execute(
        select(AdminUser).where(
            AdminUser.email == email,
            AdminUser.password_hash == hash_password(password),
        )
    )
    admin = result.scalar_one_or_none()
    if admin is None:
        logger.info(f"Invalid admin login attempt: {email}")
        raise AuthenticationError(
            AuthenticationError.INVALID_CREDENTIALS, "Invalid email or password"
        )

    logger.info(f"Admin #{admin.id} logged in")
    return admin


def restaurant_profile(restaurant: Restaurant) -> dict[str, Any]:
    """Tenant details carried in a restaurant user's session."""
    return {
        "name": restaurant.name,
        "slug": restaurant.slug,
        "is_active": restaurant.is_active,
    }
