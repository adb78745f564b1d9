"""
Core module initialization.
Exports configuration, logging utilities and application exceptions.
"""

from app.core.config import get_settings, Settings, EnvironmentMode
from app.core.exceptions import (
    AppError,
    AuthenticationError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    SelectionIncompleteError,
    StoreError,
    ValidationError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "AppError",
    "AuthenticationError",
    "InvalidTransitionError",
    "NotFoundError",
    "PermissionDeniedError",
    "SelectionIncompleteError",
    "StoreError",
    "ValidationError",
]
