"""Vendor order lifecycle tests."""
from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from agromarket.core.exceptions import InvalidTransition, NotFound
from agromarket.core.notifications import InMemoryPubSub, NotificationService, NotificationType
from agromarket.domain.order import Order, VendorOrderView
from agromarket.services.seller_order_service import SellerOrderService


def _mixed_order(**fields) -> Order:
    data = {
        "id": 12,
        "user_id": 42,
        "total": "2050",
        "status": "pending",
        "items": [
            {"id": 1, "product_id": 1, "qty": 2, "price": "500", "name": "Dairy Meal", "provider_id": 7},
            {"id": 2, "product_id": 3, "qty": 3, "price": "350", "name": "Mineral Lick", "provider_id": 9},
        ],
    }
    data.update(fields)
    return Order.from_dict(data)


def test_vendor_scope_restricts_items_and_recomputes_subtotal() -> None:
    view = VendorOrderView.scope(_mixed_order(), 7)

    assert [item.product_id for item in view.items] == [1]
    assert view.subtotal == Decimal("1000")
    assert view.order.total == Decimal("2050")


def test_vendor_scope_without_lines_is_none() -> None:
    assert VendorOrderView.scope(_mixed_order(), 11) is None


def test_vendor_reads_completed_as_delivered() -> None:
    view = VendorOrderView.scope(_mixed_order(status="completed"), 7)
    assert view.status == "delivered"
    assert view.order.buyer_status == "completed"


@pytest.fixture()
def seeded(backend):
    backend.add_order(
        [
            {"product_id": 1, "qty": 2, "price": "500", "name": "Dairy Meal", "provider_id": 7},
            {"product_id": 3, "qty": 1, "price": "350", "name": "Mineral Lick", "provider_id": 9},
        ],
        id=12,
    )
    backend.add_order(
        [{"product_id": 3, "qty": 4, "price": "350", "name": "Mineral Lick", "provider_id": 9}],
        id=13,
    )
    backend.add_order(
        [{"product_id": 2, "qty": 1, "price": "1200", "name": "Dewormer", "provider_id": 7}],
        id=14,
        status="completed",
    )
    return backend


@pytest.mark.asyncio
async def test_list_orders_for_vendor(vendor_api, seeded) -> None:
    service = SellerOrderService(vendor_api)

    views = await service.list_orders_for_vendor()

    assert [v.id for v in views] == [12, 14]
    assert views[0].subtotal == Decimal("1000")
    assert all(item.vendor_id == 7 for v in views for item in v.items)
    assert service.status_counts(views)["delivered"] == 1


@pytest.mark.asyncio
async def test_get_order_for_other_vendor_is_not_found(vendor_api, seeded) -> None:
    service = SellerOrderService(vendor_api)

    with pytest.raises(NotFound):
        await service.get_order_for_vendor(13)
    with pytest.raises(NotFound):
        await service.get_order_for_vendor(999)


@pytest.mark.asyncio
async def test_update_status_patches_and_notifies(vendor_api, seeded) -> None:
    notifications = NotificationService()
    events = []

    async def _collect(notification):
        events.append(notification)

    await notifications.subscribe_vendor(7, _collect)
    service = SellerOrderService(vendor_api, notifications=notifications)

    view = await service.update_status(12, "shipped")

    assert view.status == "shipped"
    assert seeded.orders[12]["status"] == "shipped"
    patch = next(r for r in seeded.requests if r["method"] == "PATCH")
    assert patch["path"] == "/agro/orders/seller/12/status"
    assert patch["body"] == {"status": "shipped"}

    await notifications.drain()

    assert len(events) == 1
    event = events[0]
    assert event.type is NotificationType.ORDER_STATUS_CHANGED
    assert event.status == "shipped"
    assert event.recipient_phone == "0712345678"
    assert event.data == {"previous_status": "pending", "total": "1000"}


@pytest.mark.asyncio
async def test_backward_transition_rejected_without_patch(vendor_api, seeded) -> None:
    seeded.orders[12]["status"] = "shipped"
    service = SellerOrderService(vendor_api)

    with pytest.raises(InvalidTransition):
        await service.update_status(12, "processing")

    assert not any(r["method"] == "PATCH" for r in seeded.requests)
    assert seeded.orders[12]["status"] == "shipped"


@pytest.mark.asyncio
async def test_terminal_status_rejected(vendor_api, seeded) -> None:
    service = SellerOrderService(vendor_api)

    with pytest.raises(InvalidTransition):
        await service.update_status(14, "cancelled")


@pytest.mark.asyncio
async def test_same_status_is_noop(vendor_api, seeded) -> None:
    service = SellerOrderService(vendor_api)

    view = await service.update_status(12, "pending")

    assert view.status == "pending"
    assert not any(r["method"] == "PATCH" for r in seeded.requests)


@pytest.mark.asyncio
async def test_permissive_mode_allows_backward_moves(vendor_api, seeded) -> None:
    seeded.orders[12]["status"] = "delivered"
    service = SellerOrderService(vendor_api, enforce_transitions=False)

    view = await service.update_status(12, "processing")

    assert view.status == "processing"


class BrokenNotifications:
    async def notify_status_changed(self, *args, **kwargs):
        raise ConnectionError("redis down")


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_update(vendor_api, seeded, caplog) -> None:
    service = SellerOrderService(vendor_api, notifications=BrokenNotifications())

    view = await service.update_status(12, "processing")

    assert view.status == "processing"
    assert "Failed to publish status change" in caplog.text


@pytest.mark.asyncio
async def test_slow_subscriber_does_not_block_update(vendor_api, seeded) -> None:
    notifications = NotificationService()
    release = asyncio.Event()
    delivered = []

    async def _slow_sms(notification):
        await release.wait()
        delivered.append(notification.status)

    await notifications.subscribe_all(_slow_sms)
    service = SellerOrderService(vendor_api, notifications=notifications)

    view = await asyncio.wait_for(service.update_status(12, "processing"), timeout=1.0)

    assert view.status == "processing"
    assert seeded.orders[12]["status"] == "processing"
    assert delivered == []
    assert notifications.backend.pending == 1

    release.set()
    await notifications.drain()
    assert delivered == ["processing"]


@pytest.mark.asyncio
async def test_close_cancels_stuck_deliveries() -> None:
    backend = InMemoryPubSub(close_timeout=0.05)
    notifications = NotificationService(backend)

    async def _stuck(_notification):
        await asyncio.Event().wait()

    await notifications.subscribe_all(_stuck)
    await notifications.notify_status_changed(12, "shipped", vendor_id=7)
    assert backend.pending == 1

    await notifications.close()

    assert backend.pending == 0
