"""
Application Exceptions

Every failure the API can surface to a screen is an AppError subclass.
Each carries the HTTP status it maps to and a machine-readable code, so
the exception handlers in app.main can render them uniformly.

    ValidationError          422  field-level problems, caught before any write
    SelectionIncompleteError 422  item with sizes added without choosing one
    AuthenticationError      401  wrong credentials / pending / deactivated
    PermissionDeniedError    403  session does not own the resource
    NotFoundError            404  unknown slug, order, menu item...
    InvalidTransitionError   409  status change not allowed from current state
    StoreError               503  database or feed failure, safe to retry

Version: 1.0.0
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors rendered as an ErrorResponse."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(AppError):
    """One or more fields failed validation."""

    status_code = 422
    error_code = "validation_error"

    def __init__(self, errors: dict[str, str], message: str = "Please correct the highlighted fields"):
        super().__init__(message, detail={"fields": errors})
        self.errors = errors


class SelectionIncompleteError(AppError):
    status_code = 422
    error_code = "selection_incomplete"


class AuthenticationError(AppError):
    """
    Login failed.

    The reason distinguishes "wrong credentials" from "registration still
    pending" and "account deactivated" so the login screen can show the
    right banner.
    """

    status_code = 401

    INVALID_CREDENTIALS = "invalid_credentials"
    PENDING_VERIFICATION = "pending_verification"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    SESSION_EXPIRED = "session_expired"

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason
        self.error_code = reason


class PermissionDeniedError(AppError):
    status_code = 403
    error_code = "permission_denied"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class InvalidTransitionError(AppError):
    status_code = 409
    error_code = "invalid_transition"


class StoreError(AppError):
    """The store could not complete the request. The caller may retry."""

    status_code = 503
    error_code = "store_unavailable"
