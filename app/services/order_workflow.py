"""
Status State Machines

Guarded transitions for orders, registration requests and restaurants.
Every status change in the services goes through one of these functions,
so an invalid change fails the same way no matter which caller asked for it.

Orders:
    pending  -> accepted -> completed
    pending  -> rejected
    pending  -> cancelled
    accepted -> cancelled
    completed / cancelled / rejected are terminal.

Registration requests:
    pending -> verified | rejected   (rejection needs a reason)

Restaurants:
    active | trial -> blocked -> active

Version: 1.0.0
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from app.models import OrderStatus, RegistrationStatus, RestaurantStatus


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.ACCEPTED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.ACCEPTED: frozenset({
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}

ORDER_TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    OrderStatus.ACCEPTED: "accepted_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REJECTED: "rejected_at",
}

REGISTRATION_TRANSITIONS: dict[RegistrationStatus, frozenset[RegistrationStatus]] = {
    RegistrationStatus.PENDING: frozenset({
        RegistrationStatus.VERIFIED,
        RegistrationStatus.REJECTED,
    }),
    RegistrationStatus.VERIFIED: frozenset(),
    RegistrationStatus.REJECTED: frozenset(),
}

RESTAURANT_TRANSITIONS: dict[RestaurantStatus, frozenset[RestaurantStatus]] = {
    RestaurantStatus.ACTIVE: frozenset({RestaurantStatus.BLOCKED}),
    RestaurantStatus.TRIAL: frozenset({RestaurantStatus.BLOCKED}),
    RestaurantStatus.BLOCKED: frozenset({RestaurantStatus.ACTIVE}),
}


@dataclass
class TransitionResult:
    """
    Outcome of a guarded status change.

    Attributes:
        success: Whether the record was changed
        previous: Status before the attempt
        status: Status after the attempt (unchanged on failure)
        error_code: "invalid_transition" or "reason_required" on failure
        error_message: Human readable explanation on failure
    """
    success: bool
    previous: Any
    status: Any
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "previous": getattr(self.previous, "value", self.previous),
            "status": getattr(self.status, "value", self.status),
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _invalid(current: Any, target: Any) -> TransitionResult:
    return TransitionResult(
        success=False,
        previous=current,
        status=current,
        error_code="invalid_transition",
        error_message=f"Cannot move from '{current.value}' to '{target.value}'",
    )


def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def is_terminal(status: OrderStatus) -> bool:
    return not ORDER_TRANSITIONS.get(status)


def transition_order(
    order: Any,
    target: OrderStatus,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    Move an order to ``target`` if the workflow allows it.

    On success the order's status and matching ``*_at`` timestamp are set;
    a cancellation or rejection reason is stored when given.
    """
    current = order.status
    if not can_transition_order(current, target):
        return _invalid(current, target)

    order.status = target
    setattr(order, ORDER_TIMESTAMP_FIELDS[target], now or _utc_now())
    if target in (OrderStatus.CANCELLED, OrderStatus.REJECTED) and reason:
        order.cancellation_reason = reason.strip()

    return TransitionResult(success=True, previous=current, status=target)


def transition_registration(
    request: Any,
    target: RegistrationStatus,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """Resolve a pending registration request. Rejection requires a reason."""
    current = request.status
    if target not in REGISTRATION_TRANSITIONS.get(current, frozenset()):
        return _invalid(current, target)

    if target == RegistrationStatus.REJECTED and not (reason or "").strip():
        return TransitionResult(
            success=False,
            previous=current,
            status=current,
            error_code="reason_required",
            error_message="A rejection reason is required",
        )

    request.status = target
    request.resolved_at = now or _utc_now()
    if target == RegistrationStatus.REJECTED:
        request.rejection_reason = reason.strip()

    return TransitionResult(success=True, previous=current, status=target)


def transition_restaurant(
    restaurant: Any,
    target: RestaurantStatus,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """Block or unblock a tenant, keeping the audit fields in step."""
    current = restaurant.status
    if target not in RESTAURANT_TRANSITIONS.get(current, frozenset()):
        return _invalid(current, target)

    stamp = now or _utc_now()
    restaurant.status = target
    if target == RestaurantStatus.BLOCKED:
        restaurant.block_reason = (reason or "").strip() or None
        restaurant.blocked_at = stamp
    else:
        restaurant.unblocked_at = stamp

    return TransitionResult(success=True, previous=current, status=target)
