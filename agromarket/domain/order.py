"""Order domain types and status vocabulary."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from agromarket.core.order_math import calc_items_total
from agromarket.core.sanitize import parse_int, parse_money, parse_optional_int


class OrderStatus:
    """Order statuses shared by the buyer and vendor views.

    One ``status`` string backs both views; the role reading it decides how it
    is interpreted.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    VENDOR_STATUSES = (PENDING, PROCESSING, SHIPPED, DELIVERED, CANCELLED)
    BUYER_STATUSES = (PENDING, COMPLETED, CANCELLED)

    @classmethod
    def normalize(cls, status: str | None) -> str:
        if not status:
            return cls.PENDING
        value = str(status).strip().lower()
        mapping = {
            "canceled": cls.CANCELLED,
            "paid": cls.COMPLETED,
            "success": cls.COMPLETED,
        }
        return mapping.get(value, value)

    @classmethod
    def for_buyer(cls, status: str | None) -> str:
        """Payment-facing reading: anything past pending means paid."""
        value = cls.normalize(status)
        if value in (cls.PROCESSING, cls.SHIPPED, cls.DELIVERED, cls.COMPLETED):
            return cls.COMPLETED
        if value == cls.CANCELLED:
            return cls.CANCELLED
        return cls.PENDING

    @classmethod
    def for_vendor(cls, status: str | None) -> str:
        """Fulfillment-facing reading: a completed order counts as delivered."""
        value = cls.normalize(status)
        if value == cls.COMPLETED:
            return cls.DELIVERED
        return value


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass(frozen=True, slots=True)
class BuyerInfo:
    name: str = ""
    phone: str | None = None
    email: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> BuyerInfo | None:
        if not isinstance(data, dict):
            return None
        return cls(
            name=str(data.get("name") or ""),
            phone=data.get("phone") or None,
            email=data.get("email") or None,
        )


@dataclass(frozen=True, slots=True)
class OrderLineItem:
    """Point-in-time copy of a cart line taken when the order was created."""

    id: int
    product_id: int
    vendor_id: int | None
    name: str
    unit_price: Decimal
    quantity: int
    image_ref: str | None = None
    company: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_vendor_id: int | None = None) -> OrderLineItem:
        vendor_id = parse_optional_int(data.get("provider_id"))
        return cls(
            id=parse_int(data.get("id"), 0),
            product_id=parse_int(data.get("product_id"), 0),
            vendor_id=vendor_id if vendor_id is not None else default_vendor_id,
            name=str(data.get("name") or ""),
            unit_price=parse_money(data.get("price"), "price"),
            quantity=parse_int(data.get("qty", data.get("quantity")), 0),
            image_ref=data.get("image_url"),
            company=data.get("company"),
        )


@dataclass(frozen=True, slots=True)
class Order:
    """Order as materialized by the backend of record.

    Only ``status`` and ``payment_reference`` ever change, and only through
    ``with_status`` / ``with_payment_reference`` which return new instances.
    """

    id: int
    buyer_id: int | None
    items: tuple[OrderLineItem, ...]
    total: Decimal
    status: str = OrderStatus.PENDING
    payment_reference: str | None = None
    created_at: datetime | None = None
    buyer: BuyerInfo | None = None
    raw_vendor_id: int | None = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_vendor_id: int | None = None) -> Order:
        """Build from the wire shape.

        ``default_vendor_id`` is assigned to lines that carry no vendor of
        their own; seller endpoints are already scoped by the credential.
        """
        order_vendor = parse_optional_int(data.get("provider_id"))
        if order_vendor is None:
            order_vendor = default_vendor_id
        items = tuple(
            OrderLineItem.from_dict(raw, default_vendor_id=order_vendor)
            for raw in data.get("items") or []
            if isinstance(raw, dict)
        )
        total_raw = data.get("total")
        total = parse_money(total_raw, "total") if total_raw is not None else calc_items_total(items)
        return cls(
            id=int(data["id"]),
            buyer_id=parse_optional_int(data.get("user_id", data.get("buyer_id"))),
            items=items,
            total=total,
            status=OrderStatus.normalize(data.get("status")),
            payment_reference=data.get("payment_ref") or data.get("payment_reference") or None,
            created_at=_parse_datetime(data.get("created_at")),
            buyer=BuyerInfo.from_dict(data.get("buyer")),
            raw_vendor_id=order_vendor,
        )

    @property
    def vendor_ids(self) -> set[int | None]:
        ids = {item.vendor_id for item in self.items}
        if not ids and self.raw_vendor_id is not None:
            ids.add(self.raw_vendor_id)
        return ids

    @property
    def vendor_id(self) -> int | None:
        """Derived single vendor; None for legacy multi-vendor orders."""
        ids = self.vendor_ids
        return next(iter(ids)) if len(ids) == 1 else None

    @property
    def buyer_status(self) -> str:
        return OrderStatus.for_buyer(self.status)

    @property
    def vendor_status(self) -> str:
        return OrderStatus.for_vendor(self.status)

    @property
    def is_pending(self) -> bool:
        return self.buyer_status == OrderStatus.PENDING

    def items_for_vendor(self, vendor_id: int) -> tuple[OrderLineItem, ...]:
        return tuple(item for item in self.items if item.vendor_id == vendor_id)

    def with_status(self, status: str) -> Order:
        return replace(self, status=OrderStatus.normalize(status))

    def with_payment_reference(self, reference: str | None) -> Order:
        return replace(self, payment_reference=reference)


@dataclass(frozen=True, slots=True)
class VendorOrderView:
    """An order restricted to one vendor's lines."""

    order: Order
    vendor_id: int
    items: tuple[OrderLineItem, ...]
    subtotal: Decimal

    @property
    def id(self) -> int:
        return self.order.id

    @property
    def status(self) -> str:
        return self.order.vendor_status

    @classmethod
    def scope(cls, order: Order, vendor_id: int) -> VendorOrderView | None:
        items = order.items_for_vendor(vendor_id)
        if not items:
            return None
        return cls(
            order=order,
            vendor_id=vendor_id,
            items=items,
            subtotal=calc_items_total(items),
        )
