from types import SimpleNamespace

import pytest

from app.core.exceptions import SelectionIncompleteError, ValidationError
from app.models import OrderType
from app.services.cart import (
    Cart,
    CustomerInfo,
    compose_order,
    compute_totals,
    submit_order,
)


def table_customer(**overrides) -> CustomerInfo:
    values = {"name": "Ravi", "phone": "9876543210", "table_number": "T4"}
    values.update(overrides)
    return CustomerInfo(**values)


# =============================================================================
# PRICING
# =============================================================================

def test_large_pizza_with_cheese_scenario(pizza):
    cart = Cart()

    with_cheese = cart.add(pizza, size="Large", addons=["Extra Cheese"])
    assert with_cheese.unit_total == 170
    cart.update_quantity(with_cheese, +1)
    assert with_cheese.line_total == 340

    plain_large = cart.add(pizza, size="Large")
    cart.update_quantity(plain_large, +1)
    assert plain_large.line_total == 300

    totals = compute_totals(cart)
    assert totals.subtotal == pytest.approx(640)
    assert totals.tax == pytest.approx(32)
    assert totals.total == pytest.approx(672)


def test_item_without_sizes_uses_base_price(chai):
    cart = Cart()
    line = cart.add(chai)
    assert line.unit_total == 60
    assert line.size is None


def test_totals_respect_explicit_rate(chai):
    cart = Cart()
    cart.add(chai)
    totals = compute_totals(cart, tax_rate=0.18)
    assert totals.tax == pytest.approx(10.8)
    assert totals.total == pytest.approx(70.8)


def test_empty_cart_totals_are_zero():
    assert compute_totals(Cart()).to_dict() == {"subtotal": 0, "tax": 0, "total": 0}


# =============================================================================
# SELECTION
# =============================================================================

def test_sized_item_requires_a_size(pizza):
    cart = Cart()
    with pytest.raises(SelectionIncompleteError):
        cart.add(pizza)
    assert cart.is_empty


def test_unknown_size_or_addon_rejected(pizza, chai):
    cart = Cart()
    with pytest.raises(SelectionIncompleteError):
        cart.add(pizza, size="Family")
    with pytest.raises(SelectionIncompleteError):
        cart.add(pizza, size="Large", addons=["Pineapple"])
    with pytest.raises(SelectionIncompleteError):
        cart.add(chai, size="Large")


def test_addons_have_set_semantics(pizza):
    cart = Cart()
    line = cart.add(pizza, size="Regular", addons=["Olives", "Extra Cheese", "Olives"])
    assert [addon.name for addon in line.addons] == ["Extra Cheese", "Olives"]
    assert line.unit_total == 135


# =============================================================================
# MERGING & QUANTITY
# =============================================================================

def test_same_selection_merges_regardless_of_addon_order(pizza):
    cart = Cart()
    first = cart.add(pizza, size="Large", addons=["Extra Cheese", "Olives"])
    second = cart.add(pizza, size="Large", addons=["Olives", "Extra Cheese"])

    assert first is second
    assert len(cart.lines) == 1
    assert first.quantity == 2


def test_different_selections_stay_separate(pizza):
    cart = Cart()
    cart.add(pizza, size="Large")
    cart.add(pizza, size="Regular")
    cart.add(pizza, size="Large", addons=["Olives"])

    assert len(cart.lines) == 3
    assert cart.quantity_of(pizza.id) == 3
    assert cart.item_count == 3


def test_quantity_never_drops_below_one(chai):
    cart = Cart()
    line = cart.add(chai)

    assert cart.update_quantity(line, +2) is line
    assert line.quantity == 3

    assert cart.update_quantity(line, -3) is None
    assert cart.is_empty


def test_remove_and_clear(pizza, chai):
    cart = Cart()
    line = cart.add(chai)
    cart.add(pizza, size="Regular")

    cart.remove_line(line)
    assert [l.item_id for l in cart.lines] == [pizza.id]

    cart.clear()
    assert cart.is_empty


def test_freeze_copies_selection(pizza):
    cart = Cart()
    line = cart.add(pizza, size="Large", addons=["Extra Cheese"])
    cart.update_quantity(line, +1)

    frozen = line.freeze()
    assert frozen == {
        "menu_item_id": 1,
        "name": "Margherita Pizza",
        "quantity": 2,
        "base_price": 100.0,
        "selected_size": {"name": "Large", "price": 150.0},
        "selected_addons": [{"name": "Extra Cheese", "price": 20.0}],
        "unit_price": 170.0,
        "item_total": 340.0,
    }


# =============================================================================
# CHECKOUT
# =============================================================================

def test_checkout_field_errors(chai):
    cart = Cart()
    cart.add(chai)

    with pytest.raises(ValidationError) as exc_info:
        compose_order(cart, CustomerInfo(name=" ", phone="12345", table_number=""))

    assert set(exc_info.value.errors) == {"customer_name", "customer_phone", "table_number"}


def test_takeaway_needs_no_table(chai):
    cart = Cart()
    cart.add(chai)

    composed = compose_order(
        cart, CustomerInfo(name="Ravi", phone="98765 43210", order_type=OrderType.TAKEAWAY)
    )
    assert composed.table_number is None
    assert composed.customer_phone == "9876543210"


def test_empty_cart_cannot_be_submitted():
    with pytest.raises(ValidationError) as exc_info:
        compose_order(Cart(), table_customer())
    assert "items" in exc_info.value.errors


def test_composed_totals_are_rounded():
    cart = Cart()
    cart.add(SimpleNamespace(id=3, name="Samosa", base_price=12.34, sizes=[], addons=[]))

    composed = compose_order(cart, table_customer())
    assert composed.subtotal == 12.34
    assert composed.tax == 0.62
    assert composed.total == 12.96


def test_stored_total_is_subtotal_plus_tax_to_the_cent():
    for cents in range(1, 2000):
        cart = Cart()
        line = cart.add(SimpleNamespace(id=4, name="Vada", base_price=cents / 100, sizes=[], addons=[]))
        cart.update_quantity(line, 2)

        composed = compose_order(cart, table_customer())

        assert round(composed.subtotal * 100) + round(composed.tax * 100) == round(composed.total * 100)


def test_cart_shows_what_the_order_stores():
    cart = Cart()
    cart.add(SimpleNamespace(id=5, name="Lassi", base_price=1.3, sizes=[], addons=[]))

    composed = compose_order(cart, table_customer())

    assert cart.totals().to_dict() == {"subtotal": 1.3, "tax": 0.07, "total": 1.37}
    assert (composed.subtotal, composed.tax, composed.total) == (1.3, 0.07, 1.37)


async def test_invalid_phone_never_reaches_the_store(chai):
    cart = Cart()
    cart.add(chai)
    calls = []

    async def persist(composed):
        calls.append(composed)

    with pytest.raises(ValidationError):
        await submit_order(cart, table_customer(phone="12345"), persist)

    assert calls == []
    assert not cart.is_empty


async def test_valid_checkout_is_persisted(chai):
    cart = Cart()
    cart.add(chai)
    received = []

    async def persist(composed):
        received.append(composed)
        return "ORD123"

    result = await submit_order(cart, table_customer(phone="9876543210"), persist)

    assert result == "ORD123"
    assert len(received) == 1
    assert received[0].items[0]["item_total"] == 60.0
    assert received[0].total == 63.0
