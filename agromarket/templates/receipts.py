"""Printable order receipts.

Rendering is pure: the same order and scope always produce the same text and
HTML, so receipts can be regenerated at any time.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from agromarket.core.order_math import calc_items_total, format_money
from agromarket.core.sanitize import escape_html
from agromarket.domain.order import Order, OrderLineItem, OrderStatus

RECEIPT_TITLE = "Order Receipt"

_RECEIPT_CSS = """\
body { font-family: system-ui, sans-serif; padding: 24px; max-width: 420px; margin: 0 auto; color: #111; }
.header { text-align: center; border-bottom: 2px solid #22c55e; padding-bottom: 12px; margin-bottom: 16px; }
.header h1 { margin: 0; font-size: 1.5rem; }
.sub { margin: 4px 0 0; font-size: 0.875rem; color: #6b7280; }
.row { display: flex; justify-content: space-between; margin: 8px 0; }
.muted { color: #6b7280; }
.fw { font-weight: 600; }
.capitalize { text-transform: capitalize; }
.total { font-size: 1.125rem; font-weight: bold; margin-top: 16px; padding-top: 12px; border-top: 1px solid #e5e7eb; }
.green { color: #16a34a; }
table { width: 100%; border-collapse: collapse; margin: 16px 0; font-size: 0.875rem; }
th, td { text-align: left; padding: 8px 4px; border-bottom: 1px solid #e5e7eb; }
.foot { margin-top: 24px; font-size: 0.8rem; color: #6b7280; text-align: center; }"""


@dataclass(frozen=True, slots=True)
class ReceiptLine:
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True, slots=True)
class ReceiptDocument:
    order_id: int
    date: str
    status: str
    lines: tuple[ReceiptLine, ...]
    total_label: str
    total: Decimal
    customer_name: str | None = None
    customer_phone: str | None = None
    brand: str = "SmartLivestock"
    currency: str = "KES"

    @property
    def footer(self) -> str:
        return f"Thank you for your business. {self.brand} Agrovet."

    def _money(self, amount: Decimal) -> str:
        return format_money(amount, self.currency)

    def to_text(self) -> str:
        text = f"{self.brand}\n{RECEIPT_TITLE}\n\n"
        text += f"Order #: {self.order_id}\n"
        text += f"Date: {self.date}\n"
        text += f"Status: {self.status}\n"
        if self.customer_name:
            text += f"Customer: {self.customer_name}\n"
            if self.customer_phone:
                text += f"Phone: {self.customer_phone}\n"
        text += "\nItem | Qty | Price | Total\n"
        for line in self.lines:
            text += (
                f"{line.name} | {line.quantity} | "
                f"{self._money(line.unit_price)} | {self._money(line.line_total)}\n"
            )
        text += f"\n{self.total_label}: {self._money(self.total)}\n\n"
        text += self.footer
        return text

    def to_html(self) -> str:
        rows = "".join(
            f"<tr><td>{escape_html(line.name)}</td><td>{line.quantity}</td>"
            f"<td>{escape_html(self._money(line.unit_price))}</td>"
            f"<td>{escape_html(self._money(line.line_total))}</td></tr>"
            for line in self.lines
        )
        buyer_rows = ""
        if self.customer_name:
            buyer_rows = (
                '<div class="row"><span class="muted">Customer</span>'
                f"<span>{escape_html(self.customer_name)}</span></div>"
            )
            if self.customer_phone:
                buyer_rows += (
                    '<div class="row"><span class="muted">Phone</span>'
                    f"<span>{escape_html(self.customer_phone)}</span></div>"
                )

        body = (
            f'<div class="header"><h1>{escape_html(self.brand)}</h1>'
            f'<p class="sub">{RECEIPT_TITLE}</p></div>'
            f'<div class="row"><span class="muted">Order #</span><span class="fw">{self.order_id}</span></div>'
            f'<div class="row"><span class="muted">Date</span><span>{escape_html(self.date)}</span></div>'
            f'<div class="row"><span class="muted">Status</span>'
            f'<span class="fw capitalize">{escape_html(self.status)}</span></div>'
            f"{buyer_rows}"
            "<table><thead><tr><th>Item</th><th>Qty</th><th>Price</th><th>Total</th></tr></thead>"
            f"<tbody>{rows}</tbody></table>"
            f'<div class="row total"><span>{escape_html(self.total_label)}</span>'
            f'<span class="green">{escape_html(self._money(self.total))}</span></div>'
            f'<div class="foot">{escape_html(self.footer)}</div>'
        )
        return (
            "<!DOCTYPE html>\n<html>\n"
            f"<head><meta charset=\"utf-8\"><title>Receipt #{self.order_id}</title>\n"
            f"<style>\n{_RECEIPT_CSS}\n</style>\n</head>\n"
            f"<body>{body}</body>\n</html>\n"
        )


def _receipt_line(item: OrderLineItem) -> ReceiptLine:
    return ReceiptLine(
        name=item.name,
        quantity=item.quantity,
        unit_price=item.unit_price,
        line_total=item.line_total,
    )


def render_receipt(
    order: Order,
    vendor_scope: int | None = None,
    *,
    brand: str = "SmartLivestock",
    currency: str = "KES",
) -> ReceiptDocument:
    """Build the receipt for an order, or for one vendor's share of it."""
    if vendor_scope is not None:
        items = order.items_for_vendor(vendor_scope)
        total_label = "Your share"
        total = calc_items_total(items)
        status = OrderStatus.for_vendor(order.status)
    else:
        items = order.items
        total_label = "Total"
        total = order.total
        status = OrderStatus.for_buyer(order.status)

    buyer = order.buyer
    return ReceiptDocument(
        order_id=order.id,
        date=order.created_at.strftime("%Y-%m-%d %H:%M") if order.created_at else "",
        status=status,
        lines=tuple(_receipt_line(item) for item in items),
        total_label=total_label,
        total=total,
        customer_name=buyer.name if buyer and buyer.name else None,
        customer_phone=buyer.phone if buyer else None,
        brand=brand,
        currency=currency,
    )
