"""Shared helpers for line, cart and order totals."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol


class PricedLine(Protocol):
    unit_price: Decimal
    quantity: int


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return unit_price * quantity


def calc_items_total(lines: Iterable[PricedLine]) -> Decimal:
    total = Decimal("0")
    for line in lines:
        total += line_total(line.unit_price, line.quantity)
    return total


def calc_quantity(lines: Iterable[PricedLine]) -> int:
    return sum(int(line.quantity) for line in lines)


def round_amount(amount: Decimal) -> int:
    """Round to a whole currency amount, half away from zero."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_money(amount: Decimal | int, currency: str = "KES") -> str:
    """Format an amount the way receipts show it, e.g. ``KES 1,250``."""
    value = Decimal(amount)
    if value == value.to_integral_value():
        return f"{currency} {int(value):,}"
    return f"{currency} {value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,}"
