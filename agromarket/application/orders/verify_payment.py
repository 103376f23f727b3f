"""Use case: verify a hosted-checkout payment from the order view."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from agromarket.core.exceptions import MarketplaceException
from agromarket.core.notices import Notice, success
from agromarket.domain.order import Order
from agromarket.integrations.payment_service import VERIFY_FALLBACK, PaymentService, Settlement

logger = logging.getLogger(__name__)


@dataclass
class VerifyPaymentResult:
    ok: bool
    error_key: str | None = None
    notice: Notice | None = None
    settlement: Settlement | None = None


async def verify_payment(
    order: Order,
    *,
    payments: PaymentService,
    vendor_id: int | None = None,
) -> VerifyPaymentResult:
    reference = (order.payment_reference or "").strip()
    if not reference:
        return VerifyPaymentResult(
            False,
            "missing_reference",
            notice=Notice("error", "Missing reference", "No Paystack reference found for this order."),
        )

    try:
        settlement = await payments.verify_hosted_checkout(
            reference, vendor_id if vendor_id is not None else order.vendor_id
        )
    except MarketplaceException as exc:
        logger.warning("Verify from order view failed for #%s: %s", order.id, exc.message)
        return VerifyPaymentResult(
            False,
            "verification_failed",
            notice=Notice("error", "Verification failed", exc.message or VERIFY_FALLBACK),
        )

    if not settlement.ok:
        return VerifyPaymentResult(
            False,
            "not_settled",
            notice=Notice("error", "Verification failed", settlement.message or "Payment has not been completed yet."),
            settlement=settlement,
        )

    return VerifyPaymentResult(
        True,
        notice=success(
            "Verification sent",
            "Payment verification completed. Refreshing order status...",
        ),
        settlement=settlement,
    )
