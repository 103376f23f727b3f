"""Custom exceptions for the marketplace client."""
from __future__ import annotations

from typing import Any


class MarketplaceException(Exception):
    """Base exception for all marketplace errors."""

    title = "Error"

    def __init__(self, message: str, *args: object) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationError(MarketplaceException):
    """Bad input caught before any network call."""

    pass


class InvalidQuantity(ValidationError):
    """Quantity is not a positive integer."""

    def __init__(self, quantity: Any) -> None:
        super().__init__(f"Invalid quantity: {quantity!r}")
        self.quantity = quantity


class InsufficientStock(MarketplaceException):
    """Requested quantity exceeds the product's available stock."""

    def __init__(self, product_id: int, requested: int, available: int) -> None:
        super().__init__("Insufficient stock")
        self.product_id = product_id
        self.requested = requested
        self.available = available


class VendorConflict(MarketplaceException):
    """Cart would hold products from more than one vendor."""

    title = "Different shop detected"

    def __init__(
        self,
        existing_vendor_ids: Any,
        vendor_id: int | None = None,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message
            or "You can only add products from the same agrovet shop. "
            "Please complete or clear your current cart before adding items from another shop."
        )
        self.existing_vendor_ids = existing_vendor_ids
        self.vendor_id = vendor_id

    @classmethod
    def at_checkout(cls, vendor_ids: Any) -> VendorConflict:
        exc = cls(
            vendor_ids,
            message=(
                "For secure checkout, your cart must contain products from a single "
                "agrovet shop. Please clear your cart and try again."
            ),
        )
        exc.title = "Multiple shops in cart"
        return exc


class EmptyCart(MarketplaceException):
    """Checkout attempted with nothing in the cart."""

    title = "Cart is empty"

    def __init__(self) -> None:
        super().__init__("Your cart is empty. Add products before checking out.")


class GatewayUnavailable(MarketplaceException):
    """Payment provider or network failure."""

    title = "Payment failed"

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class GatewayResponseUnrecognized(MarketplaceException):
    """No candidate field of the provider response held an authorization target."""

    title = "Payment failed"

    def __init__(self, keys: Any = None) -> None:
        super().__init__("Missing Paystack authorization URL")
        self.keys = keys


class InvalidTransition(MarketplaceException):
    """Order status change outside the allowed lifecycle."""

    def __init__(self, current: str | None, target: str, reason: str | None = None) -> None:
        super().__init__(reason or f"Transition '{current} -> {target}' is not allowed")
        self.current = current
        self.target = target


class NotFound(MarketplaceException):
    """Missing order, cart line or payment reference."""

    title = "Not found"


class CheckoutStateError(MarketplaceException):
    """Checkout operation called from a state that does not allow it."""

    def __init__(self, state: str, operation: str) -> None:
        super().__init__(f"Cannot {operation} while checkout is '{state}'")
        self.state = state
        self.operation = operation


class BackendError(MarketplaceException):
    """Backend answered with an error status."""

    def __init__(self, status: int, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.payload = payload


class BackendUnavailable(MarketplaceException):
    """Backend could not be reached (network error or timeout)."""

    pass
