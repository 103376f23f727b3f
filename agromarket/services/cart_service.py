"""Server-authoritative cart operations."""
from __future__ import annotations

import logging
from typing import Any

from agromarket.core.exceptions import BackendError, VendorConflict
from agromarket.core.sanitize import parse_quantity
from agromarket.domain.cart import Cart, CartLineItem, VendorGroup
from agromarket.domain.catalog import Product
from agromarket.integrations.marketplace_api import MarketplaceApi

logger = logging.getLogger(__name__)


class CartService:
    """Keeps a local Cart in step with the backend cart resource.

    Every mutation is validated locally first, sent to the backend, then the
    cart is re-read so the backend stays the source of truth.
    """

    def __init__(self, api: MarketplaceApi, cart: Cart | None = None) -> None:
        self.api = api
        self.cart = cart or Cart()

    async def refresh(self) -> Cart:
        payload = await self.api.get_cart()
        self.cart = Cart.from_payload(payload)
        return self.cart

    async def add_item(self, product: Product, quantity: Any = 1) -> Cart:
        qty = self.cart.check_can_add(product, quantity)
        try:
            await self.api.add_to_cart(product.id, qty)
        except BackendError as exc:
            if exc.status == 409:
                # Backend enforces the same single-shop rule.
                raise VendorConflict(
                    sorted(self.cart.vendor_ids, key=str), product.vendor_id, exc.message or None
                ) from exc
            raise
        logger.info("Added product %s x%s to cart (vendor=%s)", product.id, qty, product.vendor_id)
        return await self.refresh()

    async def update_quantity(self, line_id: int, quantity: Any) -> Cart:
        qty = parse_quantity(quantity)
        self.cart.get(line_id)
        await self.api.update_cart_item(line_id, qty)
        return await self.refresh()

    async def remove_item(self, line_id: int) -> Cart:
        await self.api.remove_from_cart(line_id)
        return await self.refresh()

    async def clear(self) -> Cart:
        await self.api.clear_cart()
        return await self.refresh()

    def group_by_vendor(self) -> list[VendorGroup]:
        return self.cart.group_by_vendor()

    def validate_for_checkout(self) -> VendorGroup:
        return self.cart.validate_for_checkout()

    @property
    def items(self) -> list[CartLineItem]:
        return self.cart.items
