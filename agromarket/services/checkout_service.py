"""
Checkout orchestration.

Drives one CheckoutSession through the checkout state machine:

    cart -> method_selection -> initializing
         -> awaiting_external_confirmation -> verifying    (hosted checkout)
         -> completed | failed | cancelled

Mobile money completes straight from ``initializing``.
"""
from __future__ import annotations

import asyncio
import logging

from agromarket.core.exceptions import (
    BackendError,
    BackendUnavailable,
    CheckoutStateError,
    GatewayUnavailable,
    MarketplaceException,
    ValidationError,
)
from agromarket.core.notifications import NotificationService
from agromarket.core.sanitize import validate_email, validate_phone
from agromarket.domain.checkout_fsm import (
    CANCELLABLE_STATES,
    TERMINAL_STATES,
    CheckoutSession,
    CheckoutState,
    PaymentMethod,
    PaymentSession,
)
from agromarket.domain.order import Order
from agromarket.integrations.payment_service import (
    INITIALIZE_FALLBACK,
    AuthorizationTarget,
    PaymentService,
    Settlement,
)
from agromarket.integrations.sentry_integration import capture_exception
from agromarket.services.cart_service import CartService

logger = logging.getLogger(__name__)

PAYMENT_NOT_COMPLETED = "Payment was not completed. Please try again."


class CheckoutService:
    """State machine driver for a single buyer checkout."""

    def __init__(
        self,
        cart_service: CartService,
        payments: PaymentService,
        notifications: NotificationService | None = None,
        buyer_id: int | None = None,
    ) -> None:
        self.cart_service = cart_service
        self.payments = payments
        self.notifications = notifications
        self.buyer_id = buyer_id
        self.session = CheckoutSession()

    @property
    def state(self) -> CheckoutState:
        return self.session.state

    def reset(self) -> CheckoutSession:
        """Start over with a new session once the previous one is finished."""
        self.session.require(
            "reset checkout",
            CheckoutState.CART,
            CheckoutState.FAILED,
            *TERMINAL_STATES,
        )
        self.session = CheckoutSession()
        return self.session

    async def begin(self) -> CheckoutSession:
        self.session.require("begin checkout", CheckoutState.CART)

        cart = await self.cart_service.refresh()
        group = cart.validate_for_checkout()

        self.session.payment = PaymentSession(vendor_id=group.vendor_id, amount=group.subtotal)
        self.session.transition(CheckoutState.METHOD_SELECTION, "begin checkout")
        logger.info(
            "Checkout started: vendor=%s amount=%s items=%s",
            group.vendor_id,
            group.subtotal,
            len(group.items),
        )
        return self.session

    def select_method(self, method: PaymentMethod | str, payer_contact: str | None) -> PaymentSession:
        self.session.require("select a payment method", CheckoutState.METHOD_SELECTION)
        method = PaymentMethod.parse(method)
        if method is PaymentMethod.GATEWAY:
            contact = validate_email(payer_contact)
        else:
            contact = validate_phone(payer_contact)

        payment = self.session.payment
        if payment is None:
            raise CheckoutStateError(self.session.state.value, "select a payment method")
        payment.method = method
        payment.payer_contact = contact
        return payment

    async def submit(self) -> CheckoutSession:
        self.session.require("submit payment", CheckoutState.METHOD_SELECTION)
        payment = self.session.payment
        if payment is None or payment.method is None or not payment.payer_contact:
            raise ValidationError("Please select a payment method")

        self.session.transition(CheckoutState.INITIALIZING, "submit payment")
        self.session.error = None

        target: AuthorizationTarget | None = None
        order: Order | None = None
        try:
            if payment.method is PaymentMethod.GATEWAY:
                target = await self.payments.initialize_hosted_checkout(
                    payment.amount,
                    payment.payer_contact,
                    payment.vendor_id,
                    on_attempt=self._record_unit_scale,
                )
            else:
                order = await self.payments.initialize_mobile_money(
                    payment.payer_contact, payment.vendor_id
                )
        except asyncio.CancelledError:
            if self.session.state is CheckoutState.INITIALIZING:
                self.session.transition(CheckoutState.CANCELLED, "cancel checkout")
                self.session.payment = None
            logger.info("Checkout initialization cancelled by task cancellation")
            raise
        except MarketplaceException as exc:
            if self.session.state is CheckoutState.CANCELLED:
                logger.info("Ignoring payment error after cancel: %s", exc.message)
                return self.session
            self.session.error = exc
            self.session.transition(CheckoutState.FAILED, "fail checkout")
            logger.warning("Checkout failed during initialization: %s", exc.message)
            self._report(exc, stage="initialize", vendor_id=payment.vendor_id)
            return self.session

        if self.session.state is CheckoutState.CANCELLED:
            # The provider may still honor this target; keep it for support.
            if order is not None:
                self.session.order = order
                logger.warning("Order #%s was created after checkout was cancelled", order.id)
            elif target is not None:
                self.session.orphaned_target = target.url
                logger.warning("Authorization target returned after cancel: %s", target.url)
            return self.session

        if order is not None:
            self.session.order = order
            self.session.transition(CheckoutState.COMPLETED, "complete checkout")
            await self._after_completion()
            await self._publish_order_created(order)
            return self.session

        if target is None:
            self.session.error = GatewayUnavailable(INITIALIZE_FALLBACK)
            self.session.transition(CheckoutState.FAILED, "fail checkout")
            return self.session

        self.session.authorization_url = target.url
        self.session.reference = target.reference
        self.session.transition(
            CheckoutState.AWAITING_EXTERNAL_CONFIRMATION, "await payment confirmation"
        )
        return self.session

    def cancel(self) -> CheckoutSession:
        self.session.require("cancel checkout", *CANCELLABLE_STATES)
        self.session.transition(CheckoutState.CANCELLED, "cancel checkout")
        self.session.payment = None
        logger.info("Checkout cancelled")
        return self.session

    async def verify(self, reference: str | None = None) -> CheckoutSession:
        self.session.require(
            "verify payment",
            CheckoutState.AWAITING_EXTERNAL_CONFIRMATION,
            CheckoutState.FAILED,
        )
        reference = (reference or self.session.reference or "").strip()
        if not reference:
            raise ValidationError("No Paystack reference found for this order.")

        self.session.transition(CheckoutState.VERIFYING, "verify payment")
        self.session.reference = reference
        self.session.error = None
        vendor_id = self.session.payment.vendor_id if self.session.payment else None

        try:
            settlement = await self.payments.verify_hosted_checkout(reference, vendor_id)
        except MarketplaceException as exc:
            self.session.error = exc
            self.session.transition(CheckoutState.FAILED, "fail verification")
            logger.warning("Payment verification failed for %s: %s", reference, exc.message)
            self._report(exc, stage="verify", reference=reference)
            return self.session

        if not settlement.ok:
            self.session.error = GatewayUnavailable(settlement.message or PAYMENT_NOT_COMPLETED)
            self.session.transition(CheckoutState.FAILED, "fail verification")
            logger.info("Payment %s settled as %s", reference, settlement.status)
            return self.session

        self.session.order = settlement.order
        self.session.transition(CheckoutState.COMPLETED, "complete checkout")
        await self._after_completion()
        await self._publish_payment_verified(settlement, vendor_id)
        return self.session

    def retry(self) -> CheckoutSession:
        self.session.require("retry checkout", CheckoutState.FAILED)
        self.session.transition(CheckoutState.METHOD_SELECTION, "retry checkout")
        self.session.error = None
        self.session.authorization_url = None
        self.session.reference = None
        return self.session

    @staticmethod
    def _report(exc: MarketplaceException, **extra) -> None:
        if not isinstance(exc, ValidationError):
            capture_exception(exc, **extra)

    def _record_unit_scale(self, scale: int) -> None:
        if self.session.payment is not None:
            self.session.payment.attempted_unit_scale = scale

    async def _after_completion(self) -> None:
        self.session.payment = None
        try:
            await self.cart_service.refresh()
        except (BackendError, BackendUnavailable) as e:
            logger.warning("Cart refresh after checkout failed: %s", e)

    async def _publish_order_created(self, order: Order) -> None:
        if not self.notifications:
            return
        try:
            await self.notifications.notify_order_created(
                order.id,
                vendor_id=order.vendor_id,
                buyer_id=order.buyer_id or self.buyer_id,
                total=str(order.total),
            )
        except Exception as e:
            logger.error("Failed to publish order_created for #%s: %s", order.id, e)

    async def _publish_payment_verified(self, settlement: Settlement, vendor_id: int | None) -> None:
        if not self.notifications or settlement.order is None:
            return
        try:
            await self.notifications.notify_payment_verified(
                settlement.order.id,
                reference=settlement.reference,
                vendor_id=settlement.order.vendor_id or vendor_id,
                buyer_id=settlement.order.buyer_id or self.buyer_id,
            )
        except Exception as e:
            logger.error("Failed to publish payment_verified for %s: %s", settlement.reference, e)
