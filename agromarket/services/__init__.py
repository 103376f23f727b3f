"""Business services orchestrating domain logic."""

from .cart_service import CartService
from .catalog_service import CatalogService
from .checkout_service import CheckoutService
from .order_service import OrderService
from .seller_order_service import SellerOrderService

__all__ = [
    "CartService",
    "CatalogService",
    "CheckoutService",
    "OrderService",
    "SellerOrderService",
]
