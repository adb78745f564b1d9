from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.models import OrderStatus, RegistrationStatus, RestaurantStatus
from app.services.order_workflow import (
    can_transition_order,
    is_terminal,
    transition_order,
    transition_registration,
    transition_restaurant,
)

NOW = datetime(2026, 10, 17, 12, 30, tzinfo=timezone.utc)


def make_order(status=OrderStatus.PENDING):
    return SimpleNamespace(
        status=status,
        accepted_at=None,
        completed_at=None,
        cancelled_at=None,
        rejected_at=None,
        cancellation_reason=None,
    )


@pytest.mark.parametrize("current,target", [
    (OrderStatus.PENDING, OrderStatus.ACCEPTED),
    (OrderStatus.PENDING, OrderStatus.REJECTED),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.ACCEPTED, OrderStatus.COMPLETED),
    (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
])
def test_allowed_order_transitions(current, target):
    assert can_transition_order(current, target)


@pytest.mark.parametrize("current,target", [
    (OrderStatus.PENDING, OrderStatus.COMPLETED),
    (OrderStatus.ACCEPTED, OrderStatus.REJECTED),
    (OrderStatus.ACCEPTED, OrderStatus.PENDING),
    (OrderStatus.COMPLETED, OrderStatus.CANCELLED),
    (OrderStatus.CANCELLED, OrderStatus.ACCEPTED),
    (OrderStatus.REJECTED, OrderStatus.ACCEPTED),
])
def test_forbidden_order_transitions(current, target):
    assert not can_transition_order(current, target)


def test_terminal_statuses():
    assert {s for s in OrderStatus if is_terminal(s)} == {
        OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REJECTED
    }


def test_accept_then_complete_stamps_timestamps():
    order = make_order()

    result = transition_order(order, OrderStatus.ACCEPTED, now=NOW)
    assert result.success
    assert result.previous == OrderStatus.PENDING
    assert order.status == OrderStatus.ACCEPTED
    assert order.accepted_at == NOW

    result = transition_order(order, OrderStatus.COMPLETED, now=NOW)
    assert result.success
    assert order.completed_at == NOW


def test_invalid_transition_leaves_order_untouched():
    order = make_order(OrderStatus.COMPLETED)

    result = transition_order(order, OrderStatus.CANCELLED, now=NOW)

    assert not result.success
    assert result.error_code == "invalid_transition"
    assert result.status == OrderStatus.COMPLETED
    assert order.status == OrderStatus.COMPLETED
    assert order.cancelled_at is None
    assert result.to_dict()["previous"] == "completed"


def test_cancel_keeps_reason():
    order = make_order(OrderStatus.ACCEPTED)
    transition_order(order, OrderStatus.CANCELLED, reason="  Out of stock ", now=NOW)
    assert order.cancellation_reason == "Out of stock"
    assert order.cancelled_at == NOW


def test_registration_rejection_needs_reason():
    request = SimpleNamespace(
        status=RegistrationStatus.PENDING, resolved_at=None, rejection_reason=None
    )

    result = transition_registration(request, RegistrationStatus.REJECTED, reason="  ")
    assert not result.success
    assert result.error_code == "reason_required"
    assert request.status == RegistrationStatus.PENDING

    result = transition_registration(
        request, RegistrationStatus.REJECTED, reason="Duplicate", now=NOW
    )
    assert result.success
    assert request.rejection_reason == "Duplicate"
    assert request.resolved_at == NOW


def test_resolved_registration_is_final():
    request = SimpleNamespace(status=RegistrationStatus.VERIFIED, resolved_at=NOW)
    result = transition_registration(request, RegistrationStatus.REJECTED, reason="late")
    assert not result.success
    assert result.error_code == "invalid_transition"


def test_block_and_unblock_restaurant():
    restaurant = SimpleNamespace(
        status=RestaurantStatus.TRIAL, block_reason=None, blocked_at=None, unblocked_at=None
    )

    assert transition_restaurant(restaurant, RestaurantStatus.BLOCKED, reason="Unpaid", now=NOW).success
    assert restaurant.block_reason == "Unpaid"
    assert restaurant.blocked_at == NOW

    assert not transition_restaurant(restaurant, RestaurantStatus.BLOCKED).success

    assert transition_restaurant(restaurant, RestaurantStatus.ACTIVE, now=NOW).success
    assert restaurant.status == RestaurantStatus.ACTIVE
    assert restaurant.unblocked_at == NOW
