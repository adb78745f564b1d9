"""
Cart / Order Composition Model

Accumulates a customer's selections into a priced, submittable order.

    item + size + add-ons  ->  CartLine (unit total)
    CartLine * quantity    ->  Cart (subtotal / tax / total)
    Cart + CustomerInfo    ->  frozen order handed to the store

Two lines are the same line when they share the item id, the size name
and the set of add-on names; adding such a selection again bumps the
quantity instead of appending a duplicate.

The cart lives only for the customer's session. Nothing here talks to the
database: ``submit_order`` takes the persistence step as a callable.

Usage:
    cart = Cart()
    line = cart.add(pizza, size="Large", addons=["Extra Cheese"])
    cart.update_quantity(line, +1)
    totals = compute_totals(cart)

Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from app.core.exceptions import SelectionIncompleteError, ValidationError
from app.core.helpers import (
    calculate_item_price,
    calculate_order_totals,
    is_valid_phone,
    normalize_phone,
    round_money,
)
from app.models import OrderType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizeOption:
    """A mutually exclusive priced alternative (e.g. Regular / Large)."""
    name: str
    price: float


@dataclass(frozen=True)
class AddonOption:
    """An independently toggleable extra."""
    name: str
    price: float


@dataclass(frozen=True)
class CartTotals:
    subtotal: float
    tax: float
    total: float

    def to_dict(self) -> dict[str, float]:
        return {"subtotal": self.subtotal, "tax": self.tax, "total": self.total}


@dataclass
class CartLine:
    """
    One priced entry of the cart.

    Attributes:
        item_id: Menu item this line refers to
        name: Item name at the time it was added
        base_price: Item base price at the time it was added
        quantity: Always >= 1 while the line is in a cart
        size: Resolved size, if the item has sizes
        addons: Resolved add-ons, sorted by name, each present once
    """
    item_id: Any
    name: str
    base_price: float
    quantity: int = 1
    size: Optional[SizeOption] = None
    addons: tuple[AddonOption, ...] = ()

    @property
    def unit_total(self) -> float:
        return calculate_item_price(self.base_price, self.size, self.addons)

    @property
    def line_total(self) -> float:
        return self.unit_total * self.quantity

    @property
    def key(self) -> tuple:
        """Structural identity used to merge repeated selections."""
        return (
            self.item_id,
            self.size.name if self.size else None,
            tuple(addon.name for addon in self.addons),
        )

    def freeze(self) -> dict[str, Any]:
        """Copy this line into an immutable order item."""
        return {
            "menu_item_id": self.item_id,
            "name": self.name,
            "quantity": self.quantity,
            "base_price": self.base_price,
            "selected_size": (
                {"name": self.size.name, "price": self.size.price} if self.size else None
            ),
            "selected_addons": [
                {"name": addon.name, "price": addon.price} for addon in self.addons
            ],
            "unit_price": round_money(self.unit_total),
            "item_total": round_money(self.line_total),
        }


SizeSelection = Union[str, SizeOption, dict, None]
AddonSelection = Union[str, AddonOption, dict]


def _size_options(item: Any) -> list[SizeOption]:
    return [SizeOption(name=s["name"], price=float(s["price"])) for s in (item.sizes or [])]


def _addon_options(item: Any) -> list[AddonOption]:
    return [AddonOption(name=a["name"], price=float(a["price"])) for a in (item.addons or [])]


def _selection_name(selection: Any) -> str:
    if isinstance(selection, str):
        return selection
    if isinstance(selection, dict):
        return selection["name"]
    return selection.name


def resolve_size(item: Any, size: SizeSelection) -> Optional[SizeOption]:
    """
    Resolve a size selection against the item's configured sizes.

    Raises:
        SelectionIncompleteError: item has sizes but none (or an unknown one) was chosen
    """
    options = _size_options(item)
    if not options:
        if size is not None:
            raise SelectionIncompleteError(f"'{item.name}' does not come in sizes")
        return None

    if size is None:
        raise SelectionIncompleteError(f"Please choose a size for '{item.name}'")

    wanted = _selection_name(size)
    for option in options:
        if option.name == wanted:
            return option
    raise SelectionIncompleteError(f"'{wanted}' is not a size of '{item.name}'")


def resolve_addons(item: Any, addons: Iterable[AddonSelection]) -> tuple[AddonOption, ...]:
    """Resolve add-on selections; duplicates collapse, result is sorted by name."""
    options = {option.name: option for option in _addon_options(item)}
    chosen: dict[str, AddonOption] = {}
    for selection in addons or ():
        name = _selection_name(selection)
        if name not in options:
            raise SelectionIncompleteError(f"'{name}' is not an add-on of '{item.name}'")
        chosen[name] = options[name]
    return tuple(chosen[name] for name in sorted(chosen))


@dataclass
class Cart:
    """Ordered list of cart lines. Insertion order is kept for display only."""

    lines: list[CartLine] = field(default_factory=list)

    def add(
        self,
        item: Any,
        size: SizeSelection = None,
        addons: Iterable[AddonSelection] = (),
    ) -> CartLine:
        """
        Add one unit of a menu item selection.

        Args:
            item: Menu item (anything with id, name, base_price, sizes, addons)
            size: Size name / SizeOption; required when the item has sizes
            addons: Add-on names / AddonOptions

        Returns:
            The line that now holds the selection

        Raises:
            SelectionIncompleteError: size required but missing, or unknown option
        """
        resolved_size = resolve_size(item, size)
        resolved_addons = resolve_addons(item, addons)

        candidate = CartLine(
            item_id=item.id,
            name=item.name,
            base_price=float(item.base_price),
            size=resolved_size,
            addons=resolved_addons,
        )

        for line in self.lines:
            if line.key == candidate.key:
                line.quantity += 1
                return line

        self.lines.append(candidate)
        return candidate

    def update_quantity(self, line: CartLine, delta: int) -> Optional[CartLine]:
        """
        Change a line's quantity by ``delta``.

        Returns the line, or None if the change removed it.
        """
        line.quantity += delta
        if line.quantity <= 0:
            self.remove_line(line)
            return None
        return line

    def remove_line(self, line: CartLine) -> None:
        self.lines = [existing for existing in self.lines if existing is not line]

    def clear(self) -> None:
        self.lines = []

    def quantity_of(self, item_id: Any) -> int:
        """Units of an item across all its size/add-on variants."""
        return sum(line.quantity for line in self.lines if line.item_id == item_id)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def totals(self) -> CartTotals:
        return compute_totals(self)


def compute_totals(cart: Cart, tax_rate: Optional[float] = None) -> CartTotals:
    """
    Subtotal, tax and total of a cart.

    Figures are taken from the frozen lines, so the cart shows exactly what
    the composed order will store. The rate defaults to ``settings.tax_rate``;
    pass one explicitly only to recompute historical figures.
    """
    return CartTotals(**calculate_order_totals(
        (line.freeze() for line in cart.lines), tax_rate=tax_rate
    ))


# =============================================================================
# CHECKOUT
# =============================================================================

@dataclass
class CustomerInfo:
    """What the checkout form collects from the customer."""
    name: str
    phone: str
    order_type: OrderType = OrderType.TABLE
    table_number: Optional[str] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        """
        Raises:
            ValidationError: with one message per offending field
        """
        errors: dict[str, str] = {}

        if not (self.name or "").strip():
            errors["customer_name"] = "Please enter your name"

        if not is_valid_phone(self.phone):
            errors["customer_phone"] = "Please enter a valid 10-digit phone number"

        if self.order_type == OrderType.TABLE and not (self.table_number or "").strip():
            errors["table_number"] = "Please enter table number"

        if errors:
            raise ValidationError(errors)


@dataclass(frozen=True)
class ComposedOrder:
    """A frozen, priced order ready to be written by the store."""
    order_type: OrderType
    table_number: Optional[str]
    customer_name: str
    customer_phone: str
    customer_notes: Optional[str]
    items: tuple[dict, ...]
    subtotal: float
    tax: float
    total: float


def compose_order(cart: Cart, customer: CustomerInfo) -> ComposedOrder:
    """Validate the checkout and freeze the cart into a ComposedOrder."""
    customer.validate()
    if cart.is_empty:
        raise ValidationError({"items": "Your cart is empty"})

    items = tuple(line.freeze() for line in cart.lines)
    totals = calculate_order_totals(items)
    is_table = customer.order_type == OrderType.TABLE

    return ComposedOrder(
        order_type=customer.order_type,
        table_number=customer.table_number.strip() if is_table else None,
        customer_name=customer.name.strip(),
        customer_phone=normalize_phone(customer.phone),
        customer_notes=(customer.notes or "").strip() or None,
        items=items,
        subtotal=totals["subtotal"],
        tax=totals["tax"],
        total=totals["total"],
    )


async def submit_order(
    cart: Cart,
    customer: CustomerInfo,
    persist: Callable[[ComposedOrder], Awaitable[Any]],
) -> Any:
    """
    Validate, freeze and hand the order to the persistence collaborator.

    Validation happens before ``persist`` is awaited, so an invalid checkout
    never reaches the store. The cart is not touched here: the caller
    clears it on success and keeps it on failure so the customer can retry.

    Args:
        cart: The customer's cart
        customer: Checkout form values
        persist: Async callable writing the order (single insert)

    Returns:
        Whatever ``persist`` returns (the stored order)
    """
    composed = compose_order(cart, customer)
    logger.debug(
        f"Submitting order: {len(composed.items)} lines, total={composed.total:.2f}"
    )
    return await persist(composed)
