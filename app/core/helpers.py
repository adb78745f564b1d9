"""
Money & Validation Helpers

Pure functions shared by the cart model, the services and the API:
currency formatting, slug / order number / temporary password generation,
price aggregation and input validation.

Version: 1.0.0
"""

import hashlib
import math
import re
import secrets
import time
from typing import Any, Iterable, Optional

from app.core.config import get_settings


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Indian mobile numbers: 10 digits starting with 6-9
PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")
PHONE_SEPARATORS = re.compile(r"[\s\-()]")

# No 0/O, 1/I to keep dictated passwords unambiguous
TEMP_PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TEMP_PASSWORD_LENGTH = 8

SLUG_MAX_LENGTH = 50


def format_currency(amount: Optional[float]) -> str:
    """Format an amount with the configured currency symbol."""
    symbol = get_settings().currency_symbol
    if amount is None or (isinstance(amount, float) and math.isnan(amount)):
        return f"{symbol}0.00"
    return f"{symbol}{amount:.2f}"


def generate_slug(name: str) -> str:
    """
    Generate a URL slug from a restaurant name.

    Example:
        >>> generate_slug("  Tasty Bites & Co. ")
        'tasty-bites-co'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    slug = slug.strip("-")
    return slug[:SLUG_MAX_LENGTH]


def generate_order_number() -> str:
    """Prefix + last 6 digits of the millisecond clock + 3 random digits."""
    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = f"{secrets.randbelow(1000):03d}"
    return f"{get_settings().order_prefix}{timestamp}{suffix}"


def generate_temp_password() -> str:
    return "".join(
        secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(TEMP_PASSWORD_LENGTH)
    )


def hash_password(password: str) -> str:
    """SHA-256 hex digest, the format stored in users / admin_users."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def round_money(amount: float) -> float:
    return round(float(amount), 2)


def _price_of(option: Any) -> float:
    return float(option["price"] if isinstance(option, dict) else option.price)


def calculate_item_price(
    base_price: float,
    selected_size: Optional[Any] = None,
    selected_addons: Optional[Iterable[Any]] = None,
) -> float:
    """
    Unit price of a menu item for a given selection.

    A selected size replaces the base price; add-on prices are added on top.
    Options may be dicts or objects, as long as they carry a ``price``.
    """
    price = _price_of(selected_size) if selected_size else float(base_price)
    if selected_addons:
        price += sum(_price_of(addon) for addon in selected_addons)
    return price


def calculate_order_totals(
    items: Iterable[dict[str, Any]],
    tax_rate: Optional[float] = None,
) -> dict[str, float]:
    """
    Aggregate frozen order items into subtotal, tax and total.

    The tax is rounded from the rounded subtotal before the total is
    summed, so a stored order always satisfies total == subtotal + tax.

    Args:
        items: Order item dicts carrying an ``item_total``
        tax_rate: Defaults to ``settings.tax_rate``

    Returns:
        dict with subtotal, tax and total, each rounded to the cent
    """
    rate = get_settings().tax_rate if tax_rate is None else tax_rate
    subtotal = round_money(sum(float(item["item_total"]) for item in items))
    tax = round_money(subtotal * rate)
    return {
        "subtotal": subtotal,
        "tax": tax,
        "total": round_money(subtotal + tax),
    }


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))


def normalize_phone(phone: str) -> str:
    """Strip spaces, dashes and parentheses."""
    return PHONE_SEPARATORS.sub("", phone or "")


def is_valid_phone(phone: Optional[str]) -> bool:
    if not phone:
        return False
    return bool(PHONE_PATTERN.match(normalize_phone(phone)))
