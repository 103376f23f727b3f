"""
Vendor-facing order lifecycle.

Vendors only ever see their own lines of an order, with the subtotal
recomputed from those lines. Status changes are validated against the
fulfillment lifecycle before they reach the backend, and every accepted
change is published as an ``order_status_changed`` event.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from agromarket.core.exceptions import InvalidTransition, NotFound, ValidationError
from agromarket.core.notifications import NotificationService
from agromarket.core.session import SessionContext
from agromarket.domain.order import Order, OrderStatus, VendorOrderView
from agromarket.domain.order_fsm import validate_order_transition
from agromarket.integrations.marketplace_api import MarketplaceApi
from agromarket.services.order_service import order_rows, parse_orders, single_order_row

logger = logging.getLogger(__name__)


class SellerOrderService:
    def __init__(
        self,
        api: MarketplaceApi,
        context: SessionContext | None = None,
        notifications: NotificationService | None = None,
        enforce_transitions: bool = True,
    ) -> None:
        self.api = api
        self.context = context or api.context
        self.notifications = notifications
        self.enforce_transitions = enforce_transitions

    def _vendor_id(self, vendor_id: int | None) -> int:
        vendor_id = vendor_id if vendor_id is not None else self.context.provider_id
        if vendor_id is None:
            raise ValidationError("Vendor id is required for seller orders")
        return int(vendor_id)

    async def list_orders_for_vendor(self, vendor_id: int | None = None) -> list[VendorOrderView]:
        vid = self._vendor_id(vendor_id)
        payload = await self.api.get_seller_orders()
        views = []
        for order in parse_orders(order_rows(payload), default_vendor_id=vid):
            view = VendorOrderView.scope(order, vid)
            if view is not None:
                views.append(view)
        return views

    async def get_order_for_vendor(self, order_id: int, vendor_id: int | None = None) -> VendorOrderView:
        vid = self._vendor_id(vendor_id)
        payload = await self.api.get_seller_order(order_id)
        row = single_order_row(payload)
        if row is None:
            raise NotFound(f"Order #{order_id} not found")
        view = VendorOrderView.scope(Order.from_dict(row, default_vendor_id=vid), vid)
        if view is None:
            raise NotFound(f"Order #{order_id} has no items from your shop")
        return view

    async def update_status(
        self, order_id: int, new_status: str, vendor_id: int | None = None
    ) -> VendorOrderView:
        vid = self._vendor_id(vendor_id)
        view = await self.get_order_for_vendor(order_id, vid)

        check = validate_order_transition(
            current_status=view.order.status,
            target_status=new_status,
            enforce=self.enforce_transitions,
        )
        if not check.allowed:
            raise InvalidTransition(view.status, str(new_status or ""), check.reason)
        if check.noop:
            logger.debug("Order #%s already %s", order_id, view.status)
            return view

        target = OrderStatus.normalize(new_status)
        payload = await self.api.update_seller_order_status(order_id, target)
        logger.info("Order #%s status %s -> %s by vendor %s", order_id, view.status, target, vid)

        updated = None
        row = single_order_row(payload)
        if row is not None:
            updated = VendorOrderView.scope(Order.from_dict(row, default_vendor_id=vid), vid)
        if updated is None:
            updated = VendorOrderView.scope(view.order.with_status(target), vid)
        if updated is None:
            raise NotFound(f"Order #{order_id} has no items for vendor {vid}")

        await self._publish_status_change(updated, previous_status=view.status)
        return updated

    async def _publish_status_change(self, view: VendorOrderView, previous_status: str) -> None:
        if not self.notifications:
            return
        order = view.order
        buyer = order.buyer
        try:
            await self.notifications.notify_status_changed(
                order.id,
                view.status,
                previous_status=previous_status,
                vendor_id=view.vendor_id,
                buyer_id=order.buyer_id,
                buyer_phone=buyer.phone if buyer else None,
                buyer_name=buyer.name if buyer else None,
                total=str(view.subtotal),
            )
        except Exception as e:
            logger.error("Failed to publish status change for order #%s: %s", order.id, e)

    @staticmethod
    def status_counts(views: Iterable[VendorOrderView]) -> dict[str, int]:
        counts = {"all": 0, **{status: 0 for status in OrderStatus.VENDOR_STATUSES}}
        for view in views:
            counts["all"] += 1
            counts[view.status] = counts.get(view.status, 0) + 1
        return counts
