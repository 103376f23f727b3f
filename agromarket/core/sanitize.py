"""Input validation helpers run before any network call."""
from __future__ import annotations

import html
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from agromarket.core.exceptions import InvalidQuantity, ValidationError

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")


def escape_html(text: Any) -> str:
    """Escape HTML special characters for printable documents."""
    if text is None:
        return ""
    return html.escape(str(text), quote=True)


def validate_email(email: str | None) -> str:
    """Return the trimmed email or raise ValidationError.

    Example:
        >>> validate_email("  farmer@example.co.ke ")
        'farmer@example.co.ke'
    """
    cleaned = (email or "").strip()
    if not cleaned:
        raise ValidationError("Please enter your email address")
    if not EMAIL_PATTERN.match(cleaned):
        raise ValidationError("Please enter a valid email address")
    return cleaned


def validate_phone(phone: str | None) -> str:
    """Return the trimmed phone number or raise ValidationError."""
    cleaned = (phone or "").strip()
    if not cleaned:
        raise ValidationError("Please enter your M-Pesa phone number")
    return cleaned


def parse_quantity(quantity: Any) -> int:
    """Validate a line quantity: an integer of at least 1."""
    if isinstance(quantity, bool):
        raise InvalidQuantity(quantity)
    if isinstance(quantity, float):
        if not quantity.is_integer():
            raise InvalidQuantity(quantity)
        quantity = int(quantity)
    if not isinstance(quantity, int):
        try:
            quantity = int(str(quantity).strip())
        except (TypeError, ValueError):
            raise InvalidQuantity(quantity) from None
    if quantity < 1:
        raise InvalidQuantity(quantity)
    return quantity


def parse_money(value: Any, field_name: str = "price") -> Decimal:
    """Parse a non-negative amount into Decimal.

    Raises:
        ValidationError: If the value is missing, non-numeric or negative
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field_name}: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    return amount


def parse_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
