"""Domain package."""

from .cart import Cart, CartLineItem, VendorGroup
from .catalog import Product, ProductPage
from .checkout_fsm import CheckoutSession, CheckoutState, PaymentMethod, PaymentSession
from .order import BuyerInfo, Order, OrderLineItem, OrderStatus, VendorOrderView

__all__ = [
    # Cart
    "Cart",
    "CartLineItem",
    "VendorGroup",
    # Catalog
    "Product",
    "ProductPage",
    # Checkout
    "CheckoutSession",
    "CheckoutState",
    "PaymentMethod",
    "PaymentSession",
    # Orders
    "BuyerInfo",
    "Order",
    "OrderLineItem",
    "OrderStatus",
    "VendorOrderView",
]
