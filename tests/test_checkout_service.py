"""Checkout orchestrator tests against the fake backend and dummy gateways."""
from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from agromarket.core.exceptions import (
    CheckoutStateError,
    EmptyCart,
    GatewayUnavailable,
    ValidationError,
    VendorConflict,
)
from agromarket.core.notifications import NotificationService, NotificationType
from agromarket.domain.catalog import Product
from agromarket.domain.checkout_fsm import CheckoutState, PaymentMethod
from agromarket.integrations.payment_service import AuthorizationTarget, PaymentService, Settlement
from agromarket.services import checkout_service as checkout_module
from agromarket.services.cart_service import CartService
from agromarket.services.checkout_service import CheckoutService


def _product(backend, pid: int) -> Product:
    return Product.from_dict(backend.products[pid])


@pytest.mark.asyncio
async def test_mobile_money_checkout_creates_order_and_empties_cart(api, backend) -> None:
    cart_service = CartService(api)
    await cart_service.add_item(_product(backend, 1), 2)
    checkout = CheckoutService(cart_service, PaymentService(api))

    await checkout.begin()
    assert checkout.session.payment.amount == Decimal("1000")
    assert checkout.session.payment.vendor_id == 7

    checkout.select_method("mpesa", "0712345678")
    session = await checkout.submit()

    assert session.state is CheckoutState.COMPLETED
    assert session.order.total == Decimal("1000")
    assert session.payment is None
    assert cart_service.cart.is_empty
    checkout_call = next(r for r in backend.requests if r["path"] == "/agro/orders/checkout")
    assert checkout_call["body"] == {"phone": "0712345678", "provider_id": 7}


@pytest.mark.asyncio
async def test_second_vendor_add_is_rejected_and_cart_keeps_one_line(api, backend) -> None:
    cart_service = CartService(api)
    await cart_service.add_item(_product(backend, 1), 1)

    with pytest.raises(VendorConflict):
        await cart_service.add_item(_product(backend, 3), 1)

    cart = await cart_service.refresh()
    assert len(cart) == 1
    assert cart.vendor_id == 7
    assert not any(
        r["path"] == "/agro/cart/add" and r["body"]["product_id"] == 3 for r in backend.requests
    )


@pytest.mark.asyncio
async def test_hosted_checkout_then_verify(api, backend) -> None:
    notifications = NotificationService()
    events = []

    async def _collect(notification):
        events.append(notification)

    await notifications.subscribe_all(_collect)

    cart_service = CartService(api)
    await cart_service.add_item(_product(backend, 2), 1)
    checkout = CheckoutService(cart_service, PaymentService(api), notifications=notifications)

    await checkout.begin()
    checkout.select_method(PaymentMethod.GATEWAY, "farmer@example.com")
    session = await checkout.submit()

    assert session.state is CheckoutState.AWAITING_EXTERNAL_CONFIRMATION
    assert session.authorization_url == "https://checkout.paystack.com/ref_100"
    assert session.reference == "ref_100"
    assert session.payment.attempted_unit_scale == 1

    session = await checkout.verify()

    assert session.state is CheckoutState.COMPLETED
    assert session.order.id == 100
    assert session.order.buyer_status == "completed"
    assert cart_service.cart.is_empty
    await notifications.drain()
    assert [e.type for e in events] == [NotificationType.PAYMENT_VERIFIED]


@pytest.mark.asyncio
async def test_hosted_checkout_falls_back_to_minor_units(api, backend) -> None:
    backend.initialize_responses.append((200, {"status": True, "message": "Authorization URL created"}))
    cart_service = CartService(api)
    await cart_service.add_item(_product(backend, 1), 1)
    checkout = CheckoutService(cart_service, PaymentService(api))

    await checkout.begin()
    checkout.select_method("paystack", "farmer@example.com")
    session = await checkout.submit()

    amounts = [r["body"]["amount"] for r in backend.requests if r["path"].endswith("/initialize")]
    assert amounts == [500, 50000]
    assert session.state is CheckoutState.AWAITING_EXTERNAL_CONFIRMATION
    assert session.payment.attempted_unit_scale == 100


@pytest.mark.asyncio
async def test_gateway_error_fails_then_retry_returns_to_method_selection(
    api, backend, monkeypatch
) -> None:
    captured = []
    monkeypatch.setattr(
        checkout_module, "capture_exception", lambda exc, **extra: captured.append((exc, extra))
    )
    backend.initialize_responses.append((502, {"error": "Paystack is unreachable"}))
    cart_service = CartService(api)
    await cart_service.add_item(_product(backend, 1), 1)
    checkout = CheckoutService(cart_service, PaymentService(api))

    await checkout.begin()
    checkout.select_method("paystack", "farmer@example.com")
    session = await checkout.submit()

    assert session.state is CheckoutState.FAILED
    assert isinstance(session.error, GatewayUnavailable)
    assert session.error.message == "Paystack is unreachable"
    assert captured == [(session.error, {"stage": "initialize", "vendor_id": 7})]

    checkout.retry()
    assert checkout.state is CheckoutState.METHOD_SELECTION
    assert checkout.session.error is None


@pytest.mark.asyncio
async def test_begin_with_empty_cart_stays_in_cart(api) -> None:
    checkout = CheckoutService(CartService(api), PaymentService(api))

    with pytest.raises(EmptyCart):
        await checkout.begin()

    assert checkout.state is CheckoutState.CART


@pytest.mark.asyncio
async def test_begin_with_conflicted_cart_raises(api, backend) -> None:
    backend.cart = [
        {"id": 1, "product_id": 1, "qty": 1, "price": "500", "stock": 10, "provider_id": 7},
        {"id": 2, "product_id": 3, "qty": 1, "price": "350", "stock": 10, "provider_id": 9},
    ]
    checkout = CheckoutService(CartService(api), PaymentService(api))

    with pytest.raises(VendorConflict) as exc_info:
        await checkout.begin()

    assert exc_info.value.title == "Multiple shops in cart"
    assert checkout.state is CheckoutState.CART


@pytest.mark.asyncio
async def test_select_method_validates_contact(api, backend) -> None:
    cart_service = CartService(api)
    await cart_service.add_item(_product(backend, 1), 1)
    checkout = CheckoutService(cart_service, PaymentService(api))
    await checkout.begin()

    with pytest.raises(ValidationError):
        checkout.select_method("paystack", "bad-email")
    with pytest.raises(ValidationError):
        checkout.select_method("mpesa", "   ")


@pytest.mark.asyncio
async def test_illegal_calls_raise_checkout_state_error(api) -> None:
    checkout = CheckoutService(CartService(api), PaymentService(api))

    with pytest.raises(CheckoutStateError):
        await checkout.submit()
    with pytest.raises(CheckoutStateError):
        await checkout.verify("ref")
    with pytest.raises(CheckoutStateError):
        checkout.cancel()


# Dummy collaborators for cancellation timing ---------------------------------


class DummyCartService:
    def __init__(self, cart):
        self.cart = cart
        self.refreshed = 0

    async def refresh(self):
        self.refreshed += 1
        return self.cart


class SlowPayments:
    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.verify_result: Settlement | None = None

    async def initialize_hosted_checkout(self, amount, payer_email, vendor_id, on_attempt=None):
        self.started.set()
        await self.release.wait()
        return AuthorizationTarget(url="https://pay/late", reference="ref_late")

    async def verify_hosted_checkout(self, reference, vendor_id=None):
        return self.verify_result


def _single_vendor_cart():
    from agromarket.domain.cart import Cart

    cart = Cart()
    cart.add(Product(id=1, name="Dairy Meal", price=Decimal("500"), available_stock=5, vendor_id=7), 2)
    return cart


@pytest.mark.asyncio
async def test_cancel_during_initializing_keeps_orphaned_target() -> None:
    payments = SlowPayments()
    checkout = CheckoutService(DummyCartService(_single_vendor_cart()), payments)
    await checkout.begin()
    checkout.select_method("paystack", "farmer@example.com")

    task = asyncio.create_task(checkout.submit())
    await payments.started.wait()
    assert checkout.state is CheckoutState.INITIALIZING

    checkout.cancel()
    payments.release.set()
    session = await task

    assert session.state is CheckoutState.CANCELLED
    assert session.orphaned_target == "https://pay/late"
    assert session.authorization_url is None
    assert session.payment is None


@pytest.mark.asyncio
async def test_task_cancellation_during_initializing_ends_cancelled() -> None:
    payments = SlowPayments()
    checkout = CheckoutService(DummyCartService(_single_vendor_cart()), payments)
    await checkout.begin()
    checkout.select_method("paystack", "farmer@example.com")

    task = asyncio.create_task(checkout.submit())
    await payments.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert checkout.state is CheckoutState.CANCELLED


@pytest.mark.asyncio
async def test_unsettled_verification_fails_and_can_be_reverified() -> None:
    payments = SlowPayments()
    payments.release.set()
    cart_service = DummyCartService(_single_vendor_cart())
    checkout = CheckoutService(cart_service, payments)
    await checkout.begin()
    checkout.select_method("paystack", "farmer@example.com")
    await checkout.submit()

    payments.verify_result = Settlement(reference="ref_late", status="pending", message="Payment pending")
    session = await checkout.verify()
    assert session.state is CheckoutState.FAILED
    assert session.error.message == "Payment pending"

    payments.verify_result = Settlement(reference="ref_late", status="success")
    session = await checkout.verify()
    assert session.state is CheckoutState.COMPLETED
    assert cart_service.refreshed == 2


class EmptyTargetPayments(SlowPayments):
    async def initialize_hosted_checkout(self, amount, payer_email, vendor_id, on_attempt=None):
        return None


@pytest.mark.asyncio
async def test_missing_target_fails_instead_of_awaiting() -> None:
    checkout = CheckoutService(DummyCartService(_single_vendor_cart()), EmptyTargetPayments())
    await checkout.begin()
    checkout.select_method("paystack", "farmer@example.com")

    session = await checkout.submit()

    assert session.state is CheckoutState.FAILED
    assert session.error.message == "Unable to initialize Paystack payment"
    assert session.authorization_url is None


def test_select_method_without_payment_session_raises() -> None:
    checkout = CheckoutService(DummyCartService(_single_vendor_cart()), SlowPayments())
    checkout.session.state = CheckoutState.METHOD_SELECTION

    with pytest.raises(CheckoutStateError):
        checkout.select_method("mpesa", "0712345678")
