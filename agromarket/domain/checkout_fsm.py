"""Checkout state machine and the ephemeral payment session."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from agromarket.core.exceptions import CheckoutStateError, ValidationError
from agromarket.domain.order import Order


class CheckoutState(str, Enum):
    CART = "cart"
    METHOD_SELECTION = "method_selection"
    INITIALIZING = "initializing"
    AWAITING_EXTERNAL_CONFIRMATION = "awaiting_external_confirmation"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    GATEWAY = "gateway"
    MOBILE_MONEY = "mobile_money"

    @classmethod
    def parse(cls, value: Any) -> PaymentMethod:
        if isinstance(value, cls):
            return value
        aliases = {
            "paystack": cls.GATEWAY,
            "card": cls.GATEWAY,
            "gateway": cls.GATEWAY,
            "mpesa": cls.MOBILE_MONEY,
            "m-pesa": cls.MOBILE_MONEY,
            "mobile_money": cls.MOBILE_MONEY,
        }
        key = str(value or "").strip().lower()
        if key not in aliases:
            raise ValidationError(f"Unknown payment method: {value!r}")
        return aliases[key]


CHECKOUT_TRANSITIONS: Mapping[CheckoutState, frozenset[CheckoutState]] = {
    CheckoutState.CART: frozenset({CheckoutState.METHOD_SELECTION}),
    CheckoutState.METHOD_SELECTION: frozenset(
        {CheckoutState.INITIALIZING, CheckoutState.CANCELLED}
    ),
    CheckoutState.INITIALIZING: frozenset(
        {
            CheckoutState.AWAITING_EXTERNAL_CONFIRMATION,
            CheckoutState.COMPLETED,
            CheckoutState.FAILED,
            CheckoutState.CANCELLED,
        }
    ),
    CheckoutState.AWAITING_EXTERNAL_CONFIRMATION: frozenset({CheckoutState.VERIFYING}),
    CheckoutState.VERIFYING: frozenset({CheckoutState.COMPLETED, CheckoutState.FAILED}),
    CheckoutState.FAILED: frozenset({CheckoutState.METHOD_SELECTION, CheckoutState.VERIFYING}),
    CheckoutState.COMPLETED: frozenset(),
    CheckoutState.CANCELLED: frozenset(),
}

CANCELLABLE_STATES = frozenset({CheckoutState.METHOD_SELECTION, CheckoutState.INITIALIZING})
TERMINAL_STATES = frozenset({CheckoutState.COMPLETED, CheckoutState.CANCELLED})


@dataclass
class PaymentSession:
    """Payment attempt details; never persisted beyond one checkout."""

    method: PaymentMethod | None = None
    payer_contact: str | None = None
    vendor_id: int | None = None
    amount: Decimal = Decimal("0")
    attempted_unit_scale: int | None = None


@dataclass
class CheckoutSession:
    state: CheckoutState = CheckoutState.CART
    payment: PaymentSession | None = None
    authorization_url: str | None = None
    reference: str | None = None
    orphaned_target: str | None = None
    order: Order | None = None
    error: Exception | None = None
    history: list[CheckoutState] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def can_transition(self, target: CheckoutState) -> bool:
        return target in CHECKOUT_TRANSITIONS[self.state]

    def transition(self, target: CheckoutState, operation: str | None = None) -> None:
        if not self.can_transition(target):
            raise CheckoutStateError(self.state.value, operation or f"move to {target.value}")
        self.history.append(self.state)
        self.state = target

    def require(self, operation: str, *states: CheckoutState) -> None:
        if self.state not in states:
            raise CheckoutStateError(self.state.value, operation)
