"""Use case: restart hosted checkout for an order that is still pending."""
from __future__ import annotations

from dataclasses import dataclass

from agromarket.core.exceptions import MarketplaceException
from agromarket.core.notices import Notice
from agromarket.domain.order import Order
from agromarket.integrations.payment_service import (
    REINITIALIZE_FALLBACK,
    AuthorizationTarget,
    PaymentService,
)


@dataclass
class PayAgainResult:
    ok: bool
    error_key: str | None = None
    notice: Notice | None = None
    target: AuthorizationTarget | None = None
    order: Order | None = None


async def pay_again(order: Order, *, payments: PaymentService) -> PayAgainResult:
    if not order.is_pending:
        return PayAgainResult(
            False,
            "not_pending",
            notice=Notice("info", "Already settled", f"Order #{order.id} is {order.buyer_status}."),
        )

    try:
        target = await payments.reinitialize_for_existing_order(order.id)
    except MarketplaceException as exc:
        return PayAgainResult(
            False,
            "reinitialize_failed",
            notice=Notice("error", "Pay again failed", exc.message or REINITIALIZE_FALLBACK),
        )

    if target.reference and target.reference != order.payment_reference:
        order = order.with_payment_reference(target.reference)
    return PayAgainResult(True, target=target, order=order)
