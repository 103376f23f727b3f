"""Vendor-facing order status transition rules (single source of truth)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from agromarket.domain.order import OrderStatus

FULFILLMENT_RANK: Mapping[str, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.SHIPPED: 2,
    OrderStatus.DELIVERED: 3,
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def _build_allowed() -> dict[str, frozenset[str]]:
    allowed: dict[str, frozenset[str]] = {}
    for status, rank in FULFILLMENT_RANK.items():
        if status in TERMINAL_STATUSES:
            allowed[status] = frozenset()
            continue
        forward = {s for s, r in FULFILLMENT_RANK.items() if r > rank}
        allowed[status] = frozenset(forward | {OrderStatus.CANCELLED})
    allowed[OrderStatus.CANCELLED] = frozenset()
    return allowed


ALLOWED_TRANSITIONS: Mapping[str, frozenset[str]] = _build_allowed()


@dataclass(frozen=True, slots=True)
class TransitionValidationResult:
    allowed: bool
    reason: str | None = None
    noop: bool = False


def validate_order_transition(
    *,
    current_status: str | None,
    target_status: str | None,
    enforce: bool = True,
) -> TransitionValidationResult:
    """Validate a vendor status change.

    Forward moves through pending < processing < shipped < delivered are
    allowed, including skips; cancelled is reachable from any non-terminal
    status. With ``enforce=False`` any known status may follow any other.
    """
    if not target_status:
        return TransitionValidationResult(False, "New status is required.")

    target = OrderStatus.normalize(target_status)
    if target not in OrderStatus.VENDOR_STATUSES:
        return TransitionValidationResult(False, f"Unsupported status: {target}")

    current = OrderStatus.for_vendor(current_status) if current_status is not None else None

    if current == target:
        return TransitionValidationResult(True, noop=True)

    if not enforce:
        return TransitionValidationResult(True)

    if current is None:
        return TransitionValidationResult(True)

    if current not in ALLOWED_TRANSITIONS:
        return TransitionValidationResult(False, f"Unsupported current status: {current}")

    if current in TERMINAL_STATUSES:
        return TransitionValidationResult(
            False,
            f"Cannot change terminal status '{current}'.",
        )

    if target not in ALLOWED_TRANSITIONS[current]:
        return TransitionValidationResult(
            False,
            f"Transition '{current} -> {target}' is not allowed.",
        )

    return TransitionValidationResult(True)
