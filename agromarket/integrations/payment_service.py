"""
Payment integrations for marketplace checkout.

Supports:
- Paystack hosted checkout (redirect to an authorization URL, verify on return)
- M-Pesa mobile money (mocked synchronous success that creates the order)

Both are reached through the marketplace backend; this module never talks to
the providers directly.
"""
from __future__ import annotations

import logging
from abc import ABC
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from agromarket.core.exceptions import (
    BackendError,
    BackendUnavailable,
    GatewayResponseUnrecognized,
    GatewayUnavailable,
    NotFound,
    ValidationError,
)
from agromarket.core.idempotency import verification_key
from agromarket.core.order_math import round_amount
from agromarket.core.retry import async_retry
from agromarket.core.sanitize import parse_money, validate_email, validate_phone
from agromarket.domain.checkout_fsm import PaymentMethod
from agromarket.domain.order import Order, OrderStatus
from agromarket.integrations.marketplace_api import MarketplaceApi, error_message

logger = logging.getLogger(__name__)

INITIALIZE_FALLBACK = "Unable to initialize Paystack payment"
VERIFY_FALLBACK = "Unable to verify Paystack payment"
REINITIALIZE_FALLBACK = "Unable to re-initialize Paystack payment"
MOBILE_MONEY_FALLBACK = "M-Pesa payment failed"

FieldAccessor = tuple[str, Callable[[Any], Any]]


def _path(*keys: str) -> Callable[[Any], Any]:
    def accessor(payload: Any) -> Any:
        node = payload
        for key in keys:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        return node

    return accessor


# Compatibility shim for the backend's initialize/reinitialize response.
# The field holding the redirect URL has moved between backend releases, so
# candidates are tried in this order and the first non-empty string wins.
# Bump the version when the list changes.
AUTHORIZATION_TARGET_SHIM_VERSION = 1

AUTHORIZATION_URL_ACCESSORS: tuple[FieldAccessor, ...] = (
    ("authorization_url", _path("authorization_url")),
    ("data.authorization_url", _path("data", "authorization_url")),
    ("data.authorizationUrl", _path("data", "authorizationUrl")),
    ("authorizationUrl", _path("authorizationUrl")),
    ("payment_url", _path("payment_url")),
    ("data.payment_url", _path("data", "payment_url")),
)

REFERENCE_ACCESSORS: tuple[FieldAccessor, ...] = (
    ("reference", _path("reference")),
    ("data.reference", _path("data", "reference")),
    ("payment_ref", _path("payment_ref")),
    ("data.payment_ref", _path("data", "payment_ref")),
)

SETTLEMENT_STATUS_ACCESSORS: tuple[FieldAccessor, ...] = (
    ("data.status", _path("data", "status")),
    ("status", _path("status")),
    ("payment_status", _path("payment_status")),
)

ORDER_ACCESSORS: tuple[FieldAccessor, ...] = (
    ("order", _path("order")),
    ("data.order", _path("data", "order")),
)


def first_field(payload: Any, accessors: Sequence[FieldAccessor]) -> tuple[str, str] | None:
    """Return ``(field_name, value)`` for the first non-empty string match."""
    for name, accessor in accessors:
        value = accessor(payload)
        if isinstance(value, str) and value.strip():
            return name, value.strip()
    return None


def _embedded_order(payload: Any) -> Order | None:
    for _name, accessor in ORDER_ACCESSORS:
        value = accessor(payload)
        if isinstance(value, dict) and "id" in value:
            return Order.from_dict(value)
    return None


class SettlementStatus:
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"

    _MAPPING = {
        "success": SUCCESS,
        "successful": SUCCESS,
        "completed": SUCCESS,
        "paid": SUCCESS,
        "failed": FAILED,
        "abandoned": FAILED,
        "reversed": FAILED,
        "cancelled": FAILED,
        "pending": PENDING,
        "ongoing": PENDING,
        "processing": PENDING,
    }

    @classmethod
    def normalize(cls, value: str | None) -> str | None:
        if not value:
            return None
        return cls._MAPPING.get(value.strip().lower())


@dataclass(frozen=True, slots=True)
class AuthorizationTarget:
    url: str
    reference: str | None = None
    matched_field: str = "authorization_url"
    amount_sent: int | None = None
    unit_scale: int | None = None


@dataclass(frozen=True, slots=True)
class Settlement:
    reference: str
    status: str
    order: Order | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SettlementStatus.SUCCESS


@dataclass(frozen=True, slots=True)
class UnitScalePolicy:
    """Amount multipliers tried in order until the provider yields a target.

    ``(1, 100)`` sends the major-unit amount first and retries once in minor
    units, for backends whose Paystack amount convention is unknown.
    """

    scales: tuple[int, ...] = (1, 100)

    def attempts(self, amount: Decimal) -> list[tuple[int, int]]:
        return [(scale, round_amount(amount * scale)) for scale in self.scales]


class PaymentGateway(ABC):
    """Base for payment strategies reachable from checkout."""

    method: PaymentMethod

    def __init__(self, api: MarketplaceApi) -> None:
        self.api = api


class HostedCheckoutGateway(PaymentGateway):
    """Paystack hosted checkout driven through the backend."""

    method = PaymentMethod.GATEWAY

    def __init__(
        self,
        api: MarketplaceApi,
        unit_policy: UnitScalePolicy | None = None,
        verify_attempts: int = 2,
    ) -> None:
        super().__init__(api)
        self.unit_policy = unit_policy or UnitScalePolicy()
        self.verify_attempts = max(1, int(verify_attempts))

    @staticmethod
    def resolve_target(payload: Any) -> tuple[str, str] | None:
        return first_field(payload, AUTHORIZATION_URL_ACCESSORS)

    async def initialize(
        self,
        amount: Decimal | int,
        payer_email: str,
        vendor_id: int | None,
        on_attempt: Callable[[int], None] | None = None,
    ) -> AuthorizationTarget:
        email = validate_email(payer_email)
        amount = parse_money(amount, "amount")
        if amount == 0:
            raise ValidationError(f"Invalid amount: {amount}")

        attempts = self.unit_policy.attempts(amount)
        for index, (scale, amount_sent) in enumerate(attempts):
            if index > 0:
                logger.warning(
                    "Paystack initialize returned no authorization target for amount %s; "
                    "retrying with unit scale x%s (amount %s)",
                    attempts[index - 1][1],
                    scale,
                    amount_sent,
                )
            if on_attempt is not None:
                on_attempt(scale)
            payload = await self._call(
                self.api.initialize_paystack(amount_sent, email, vendor_id),
                INITIALIZE_FALLBACK,
            )
            match = self.resolve_target(payload)
            if match:
                field_name, url = match
                reference = first_field(payload, REFERENCE_ACCESSORS)
                logger.info(
                    "Paystack checkout initialized (vendor=%s, amount=%s, scale=x%s, field=%s)",
                    vendor_id,
                    amount_sent,
                    scale,
                    field_name,
                )
                return AuthorizationTarget(
                    url=url,
                    reference=reference[1] if reference else None,
                    matched_field=field_name,
                    amount_sent=amount_sent,
                    unit_scale=scale,
                )

        logger.error(
            "Paystack initialize: no authorization target in any candidate field (shim v%s)",
            AUTHORIZATION_TARGET_SHIM_VERSION,
        )
        raise GatewayResponseUnrecognized([name for name, _ in AUTHORIZATION_URL_ACCESSORS])

    async def verify(self, reference: str, vendor_id: int | None = None) -> Settlement:
        reference = (reference or "").strip()
        if not reference:
            raise ValidationError("No Paystack reference found for this order.")

        try:
            payload = await self._verify_request(reference, vendor_id)
        except NotFound:
            raise
        except BackendError as exc:
            raise GatewayUnavailable(exc.message or VERIFY_FALLBACK, exc.status) from exc
        except BackendUnavailable as exc:
            raise GatewayUnavailable(VERIFY_FALLBACK) from exc

        return self.parse_settlement(reference, payload)

    @async_retry(
        max_attempts=lambda self: self.verify_attempts,
        exceptions=(BackendUnavailable,),
    )
    async def _verify_request(self, reference: str, vendor_id: int | None) -> Any:
        return await self.api.verify_paystack(
            reference,
            vendor_id,
            idempotency_key=verification_key(reference, vendor_id),
        )

    @staticmethod
    def parse_settlement(reference: str, payload: Any) -> Settlement:
        order = _embedded_order(payload)
        status_match = first_field(payload, SETTLEMENT_STATUS_ACCESSORS)
        status = SettlementStatus.normalize(status_match[1]) if status_match else None
        if status is None and order is not None:
            status = (
                SettlementStatus.SUCCESS
                if order.buyer_status == OrderStatus.COMPLETED
                else SettlementStatus.PENDING
                if order.buyer_status == OrderStatus.PENDING
                else SettlementStatus.FAILED
            )
        if status is None:
            # A 2xx without a recognizable status means the backend accepted it.
            status = SettlementStatus.SUCCESS
        message = error_message(payload, "") or None
        return Settlement(reference=reference, status=status, order=order, message=message)

    async def reinitialize(self, order_id: int) -> AuthorizationTarget:
        try:
            payload = await self.api.reinitialize_paystack(order_id)
        except NotFound:
            raise
        except BackendError as exc:
            raise GatewayUnavailable(exc.message or REINITIALIZE_FALLBACK, exc.status) from exc
        except BackendUnavailable as exc:
            raise GatewayUnavailable(REINITIALIZE_FALLBACK) from exc

        match = self.resolve_target(payload)
        if not match:
            raise GatewayResponseUnrecognized([name for name, _ in AUTHORIZATION_URL_ACCESSORS])
        field_name, url = match
        reference = first_field(payload, REFERENCE_ACCESSORS)
        logger.info("Paystack checkout re-initialized for order #%s (field=%s)", order_id, field_name)
        return AuthorizationTarget(
            url=url,
            reference=reference[1] if reference else None,
            matched_field=field_name,
        )

    @staticmethod
    async def _call(request: Any, fallback: str) -> Any:
        try:
            return await request
        except (BackendError, NotFound) as exc:
            raise GatewayUnavailable(exc.message or fallback, getattr(exc, "status", None)) from exc
        except BackendUnavailable as exc:
            raise GatewayUnavailable(fallback) from exc


class MobileMoneyGateway(PaymentGateway):
    """M-Pesa path: the STK push is mocked and the order is created at once."""

    method = PaymentMethod.MOBILE_MONEY

    async def initialize(self, phone: str, vendor_id: int | None) -> Order:
        phone = validate_phone(phone)
        try:
            payload = await self.api.checkout(phone, vendor_id)
        except (BackendError, NotFound) as exc:
            raise GatewayUnavailable(
                exc.message or MOBILE_MONEY_FALLBACK, getattr(exc, "status", None)
            ) from exc
        except BackendUnavailable as exc:
            raise GatewayUnavailable(MOBILE_MONEY_FALLBACK) from exc

        order = _embedded_order(payload)
        if order is None and isinstance(payload, dict) and "id" in payload:
            order = Order.from_dict(payload)
        if order is None:
            raise GatewayUnavailable(MOBILE_MONEY_FALLBACK)
        logger.info("M-Pesa (mock) checkout created order #%s for vendor %s", order.id, vendor_id)
        return order


class PaymentService:
    """Single entry point over both payment strategies."""

    def __init__(
        self,
        api: MarketplaceApi,
        unit_scales: Sequence[int] = (1, 100),
        verify_attempts: int = 2,
    ) -> None:
        self.hosted = HostedCheckoutGateway(
            api,
            unit_policy=UnitScalePolicy(tuple(unit_scales)),
            verify_attempts=verify_attempts,
        )
        self.mobile_money = MobileMoneyGateway(api)

    async def initialize_hosted_checkout(
        self,
        amount: Decimal | int,
        payer_email: str,
        vendor_id: int | None,
        on_attempt: Callable[[int], None] | None = None,
    ) -> AuthorizationTarget:
        return await self.hosted.initialize(amount, payer_email, vendor_id, on_attempt=on_attempt)

    async def verify_hosted_checkout(self, reference: str, vendor_id: int | None = None) -> Settlement:
        return await self.hosted.verify(reference, vendor_id)

    async def initialize_mobile_money(self, phone: str, vendor_id: int | None) -> Order:
        return await self.mobile_money.initialize(phone, vendor_id)

    async def reinitialize_for_existing_order(self, order_id: int) -> AuthorizationTarget:
        return await self.hosted.reinitialize(order_id)
