"""Buyer-side order views."""
from __future__ import annotations

import logging
from typing import Any, Iterable

from agromarket.core.exceptions import NotFound, ValidationError
from agromarket.domain.order import Order, OrderStatus
from agromarket.integrations.marketplace_api import MarketplaceApi

logger = logging.getLogger(__name__)


def order_rows(payload: Any) -> list[dict[str, Any]]:
    """Extract order dicts from a list or an enveloped response."""
    if isinstance(payload, dict):
        payload = payload.get("data") or payload.get("orders") or []
    if not isinstance(payload, list):
        return []
    return [row for row in payload if isinstance(row, dict)]


def single_order_row(payload: Any) -> dict[str, Any] | None:
    if isinstance(payload, dict):
        for key in ("order", "data"):
            nested = payload.get(key)
            if isinstance(nested, dict) and "id" in nested:
                return nested
        if "id" in payload:
            return payload
    return None


def parse_orders(rows: Iterable[dict[str, Any]], default_vendor_id: int | None = None) -> list[Order]:
    orders = []
    for row in rows:
        try:
            orders.append(Order.from_dict(row, default_vendor_id=default_vendor_id))
        except (ValidationError, KeyError, ValueError) as e:
            logger.warning("Skipping malformed order %r: %s", row.get("id"), e)
    return orders


class OrderService:
    """The buyer's own orders, read in the payment-facing vocabulary."""

    def __init__(self, api: MarketplaceApi) -> None:
        self.api = api

    async def list_orders(self) -> list[Order]:
        payload = await self.api.get_orders()
        return parse_orders(order_rows(payload))

    async def get_order(self, order_id: int) -> Order:
        payload = await self.api.get_order(order_id)
        row = single_order_row(payload)
        if row is None:
            raise NotFound(f"Order #{order_id} not found")
        return Order.from_dict(row)

    @staticmethod
    def filter_orders(
        orders: Iterable[Order],
        status: str | None = None,
        query: str | None = None,
    ) -> list[Order]:
        """Filter by buyer status, then match id, status or item name."""
        wanted = OrderStatus.for_buyer(status) if status and status != "all" else None
        q = (query or "").strip().lower()

        result = []
        for order in orders:
            if wanted and order.buyer_status != wanted:
                continue
            if q and not (
                q in str(order.id)
                or q in order.buyer_status
                or any(q in item.name.lower() for item in order.items)
            ):
                continue
            result.append(order)
        return result

    @staticmethod
    def status_counts(orders: Iterable[Order]) -> dict[str, int]:
        counts = {"all": 0, **{status: 0 for status in OrderStatus.BUYER_STATUSES}}
        for order in orders:
            counts["all"] += 1
            counts[order.buyer_status] += 1
        return counts
