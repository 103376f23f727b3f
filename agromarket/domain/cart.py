"""Cart aggregate with the single-vendor guard."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Iterator

from agromarket.core.exceptions import (
    EmptyCart,
    InsufficientStock,
    NotFound,
    ValidationError,
    VendorConflict,
)
from agromarket.core.order_math import calc_items_total, calc_quantity, line_total
from agromarket.core.sanitize import parse_int, parse_money, parse_optional_int, parse_quantity
from agromarket.domain.catalog import Product

logger = logging.getLogger(__name__)


@dataclass
class CartLineItem:
    """Single line in the buyer's cart."""

    id: int
    product_id: int
    vendor_id: int | None
    vendor_name: str
    unit_price: Decimal
    quantity: int
    available_stock: int
    display_name: str
    image_ref: str | None = None

    @property
    def line_total(self) -> Decimal:
        return line_total(self.unit_price, self.quantity)

    @property
    def exceeds_stock(self) -> bool:
        return self.quantity > self.available_stock

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "provider_id": self.vendor_id,
            "shop_name": self.vendor_name,
            "price": str(self.unit_price),
            "qty": self.quantity,
            "stock": self.available_stock,
            "name": self.display_name,
            "image_url": self.image_ref,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CartLineItem:
        return cls(
            id=int(data["id"]),
            product_id=int(data["product_id"]),
            vendor_id=parse_optional_int(data.get("provider_id")),
            vendor_name=str(data.get("shop_name") or ""),
            unit_price=parse_money(data.get("price"), "price"),
            quantity=parse_int(data.get("qty", data.get("quantity")), 1),
            available_stock=parse_int(data.get("stock", data.get("available_stock")), 0),
            display_name=str(data.get("name") or ""),
            image_ref=data.get("image_url"),
        )


@dataclass(frozen=True, slots=True)
class VendorGroup:
    """Display bucket of cart lines that share a vendor."""

    vendor_id: int | None
    vendor_name: str
    items: tuple[CartLineItem, ...]
    subtotal: Decimal


class Cart:
    """Ordered collection of line items keyed by line id.

    All lines share one vendor_id. Mutators either succeed completely or
    raise without touching the cart.
    """

    def __init__(self, items: Iterable[CartLineItem] = ()) -> None:
        self._items: dict[int, CartLineItem] = {}
        for item in items:
            self._items[item.id] = item

    @classmethod
    def from_payload(cls, payload: Any) -> Cart:
        if isinstance(payload, dict):
            payload = payload.get("cart_items") or payload.get("items") or payload.get("data") or []
        if not isinstance(payload, list):
            return cls()
        items = []
        for raw in payload:
            if not isinstance(raw, dict):
                continue
            try:
                items.append(CartLineItem.from_dict(raw))
            except (ValidationError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed cart line %s: %s", raw.get("id"), e)
        return cls(items)

    def __iter__(self) -> Iterator[CartLineItem]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[CartLineItem]:
        return list(self._items.values())

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def total(self) -> Decimal:
        return calc_items_total(self._items.values())

    @property
    def item_count(self) -> int:
        return calc_quantity(self._items.values())

    @property
    def vendor_ids(self) -> set[int | None]:
        return {item.vendor_id for item in self._items.values()}

    @property
    def vendor_id(self) -> int | None:
        """The cart's vendor, or None when empty or conflicted."""
        ids = self.vendor_ids
        return next(iter(ids)) if len(ids) == 1 else None

    @property
    def has_vendor_conflict(self) -> bool:
        return len(self.vendor_ids) > 1

    def get(self, line_id: int) -> CartLineItem:
        try:
            return self._items[int(line_id)]
        except KeyError:
            raise NotFound(f"Cart item {line_id} not found") from None

    def find_by_product(self, product_id: int) -> CartLineItem | None:
        for item in self._items.values():
            if item.product_id == int(product_id):
                return item
        return None

    def check_can_add(self, product: Product, quantity: Any) -> int:
        """Validate an add-to-cart request and return the parsed quantity."""
        qty = parse_quantity(quantity)

        if self._items:
            existing = self.vendor_ids
            if len(existing) > 1 or product.vendor_id not in existing:
                raise VendorConflict(sorted(existing, key=str), product.vendor_id)

        current = self.find_by_product(product.id)
        already = current.quantity if current else 0
        if already + qty > product.available_stock:
            raise InsufficientStock(product.id, already + qty, product.available_stock)
        return qty

    def add(self, product: Product, quantity: Any, line_id: int | None = None) -> CartLineItem:
        qty = self.check_can_add(product, quantity)

        current = self.find_by_product(product.id)
        if current is not None:
            current.quantity += qty
            current.available_stock = product.available_stock
            return current

        if line_id is None:
            line_id = max(self._items, default=0) + 1
        item = CartLineItem(
            id=int(line_id),
            product_id=product.id,
            vendor_id=product.vendor_id,
            vendor_name=product.vendor_name,
            unit_price=product.price,
            quantity=qty,
            available_stock=product.available_stock,
            display_name=product.name,
            image_ref=product.image_ref,
        )
        self._items[item.id] = item
        return item

    def update_quantity(self, line_id: int, quantity: Any) -> CartLineItem:
        qty = parse_quantity(quantity)
        item = self.get(line_id)
        item.quantity = qty
        return item

    def remove(self, line_id: int) -> bool:
        return self._items.pop(int(line_id), None) is not None

    def clear(self) -> None:
        self._items.clear()

    def group_by_vendor(self) -> list[VendorGroup]:
        buckets: dict[int | None, list[CartLineItem]] = {}
        for item in self._items.values():
            buckets.setdefault(item.vendor_id, []).append(item)

        groups = []
        for vendor_id, items in buckets.items():
            vendor_name = next((i.vendor_name for i in items if i.vendor_name), "") or "Unknown shop"
            groups.append(
                VendorGroup(
                    vendor_id=vendor_id,
                    vendor_name=vendor_name,
                    items=tuple(items),
                    subtotal=calc_items_total(items),
                )
            )
        return groups

    def validate_for_checkout(self) -> VendorGroup:
        """Return the single vendor group or raise the blocking error."""
        if self.is_empty:
            raise EmptyCart()
        groups = self.group_by_vendor()
        if len(groups) > 1:
            raise VendorConflict.at_checkout(sorted(self.vendor_ids, key=str))
        for item in self._items.values():
            if item.exceeds_stock:
                raise InsufficientStock(item.product_id, item.quantity, item.available_stock)
        return groups[0]

    def snapshot(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self._items.values()]
