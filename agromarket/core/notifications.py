"""
Order event notifications with a Pub/Sub pattern.

Supports:
- In-memory pub/sub for a single process
- Redis pub/sub when several workers share events

Status changes are published as events; delivery (SMS and so on) is done by
subscribers so a failed send never blocks the status change itself.
"""
from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Types of order events."""

    ORDER_CREATED = "order_created"
    ORDER_STATUS_CHANGED = "order_status_changed"
    PAYMENT_VERIFIED = "payment_verified"


@dataclass
class Notification:
    """Event payload."""

    type: NotificationType
    order_id: int
    status: str
    recipient_id: int | None = None  # buyer user_id
    vendor_id: int | None = None
    recipient_phone: str | None = None
    recipient_name: str | None = None
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "order_id": self.order_id,
            "status": self.status,
            "recipient_id": self.recipient_id,
            "vendor_id": self.vendor_id,
            "recipient_phone": self.recipient_phone,
            "recipient_name": self.recipient_name,
            "message": self.message,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Notification:
        return cls(
            type=NotificationType(data["type"]),
            order_id=int(data["order_id"]),
            status=data["status"],
            recipient_id=data.get("recipient_id"),
            vendor_id=data.get("vendor_id"),
            recipient_phone=data.get("recipient_phone"),
            recipient_name=data.get("recipient_name"),
            message=data.get("message", ""),
            data=data.get("data", {}),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


NotificationHandler = Callable[[Notification], Awaitable[None]]


class PubSubBackend(ABC):
    """Abstract base for pub/sub backends."""

    @abstractmethod
    async def publish(self, channel: str, notification: Notification) -> None:
        pass

    @abstractmethod
    async def subscribe(self, channel: str, handler: NotificationHandler) -> None:
        pass

    @abstractmethod
    async def unsubscribe(self, channel: str, handler: NotificationHandler) -> None:
        pass

    async def drain(self) -> None:
        """Wait for locally scheduled deliveries; a no-op for remote brokers."""

    @abstractmethod
    async def close(self) -> None:
        pass


class InMemoryPubSub(PubSubBackend):
    """In-memory pub/sub for single instance deployments.

    Handlers run as background tasks so a slow subscriber (an SMS send,
    for example) never holds up the publisher.
    """

    def __init__(self, close_timeout: float = 5.0) -> None:
        self._subscribers: dict[str, set[NotificationHandler]] = {}
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self.close_timeout = close_timeout

    async def publish(self, channel: str, notification: Notification) -> None:
        for handler in self._subscribers.get(channel, set()).copy():
            task = asyncio.create_task(handler(notification))
            self._tasks.add(task)
            task.add_done_callback(partial(self._on_delivered, channel))

    def _on_delivered(self, channel: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Handler error in channel %s: %s", channel, exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def subscribe(self, channel: str, handler: NotificationHandler) -> None:
        async with self._lock:
            self._subscribers.setdefault(channel, set()).add(handler)
            logger.debug("Subscribed to %s, total: %s", channel, len(self._subscribers[channel]))

    async def unsubscribe(self, channel: str, handler: NotificationHandler) -> None:
        async with self._lock:
            if channel in self._subscribers:
                self._subscribers[channel].discard(handler)
                if not self._subscribers[channel]:
                    del self._subscribers[channel]

    async def close(self) -> None:
        self._subscribers.clear()
        if not self._tasks:
            return
        _done, pending = await asyncio.wait(list(self._tasks), timeout=self.close_timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %s undelivered notification(s) on close", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)


class RedisPubSub(PubSubBackend):
    """Redis-based pub/sub for multi-instance deployments."""

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._redis: aioredis.Redis | None = None
        self._pubsub: Any = None
        self._subscribers: dict[str, set[NotificationHandler]] = {}
        self._listener_task: asyncio.Task | None = None
        self._running = False

    async def _ensure_connected(self) -> None:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url)
            self._pubsub = self._redis.pubsub()
            self._running = True
            self._listener_task = asyncio.create_task(self._listen())

    async def _listen(self) -> None:
        while self._running and self._pubsub:
            try:
                if not self._subscribers:
                    await asyncio.sleep(0.1)
                    continue
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message and message["type"] == "message":
                    channel = (
                        message["channel"].decode()
                        if isinstance(message["channel"], bytes)
                        else message["channel"]
                    )
                    notification = Notification.from_dict(json.loads(message["data"]))

                    for handler in self._subscribers.get(channel, set()).copy():
                        try:
                            await handler(notification)
                        except Exception as e:
                            logger.error("Handler error: %s", e)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Redis listener error: %s", e)
                await asyncio.sleep(1)

    async def publish(self, channel: str, notification: Notification) -> None:
        await self._ensure_connected()
        await self._redis.publish(channel, notification.to_json())

    async def subscribe(self, channel: str, handler: NotificationHandler) -> None:
        await self._ensure_connected()

        if channel not in self._subscribers:
            self._subscribers[channel] = set()
            await self._pubsub.subscribe(channel)

        self._subscribers[channel].add(handler)

    async def unsubscribe(self, channel: str, handler: NotificationHandler) -> None:
        if channel in self._subscribers:
            self._subscribers[channel].discard(handler)
            if not self._subscribers[channel]:
                del self._subscribers[channel]
                if self._pubsub:
                    await self._pubsub.unsubscribe(channel)

    async def close(self) -> None:
        self._running = False
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
        if self._pubsub:
            await self._pubsub.aclose()
        if self._redis:
            await self._redis.aclose()


class NotificationService:
    """
    Publishes order events.

    Every event goes to the order channel, the vendor channel and, when the
    buyer is known, the buyer channel. Subscribers pick whichever fits.
    """

    ALL_ORDERS_CHANNEL = "orders"

    def __init__(self, backend: PubSubBackend | None = None) -> None:
        self._backend = backend or InMemoryPubSub()

    @classmethod
    def from_redis_url(cls, redis_url: str | None) -> NotificationService:
        if redis_url:
            return cls(RedisPubSub(redis_url))
        return cls(InMemoryPubSub())

    @property
    def backend(self) -> PubSubBackend:
        return self._backend

    # Channel naming conventions
    @staticmethod
    def order_channel(order_id: int) -> str:
        return f"order:{order_id}"

    @staticmethod
    def vendor_channel(vendor_id: int) -> str:
        return f"vendor:{vendor_id}"

    @staticmethod
    def buyer_channel(user_id: int) -> str:
        return f"buyer:{user_id}"

    def channels_for(self, notification: Notification) -> list[str]:
        channels = [self.ALL_ORDERS_CHANNEL, self.order_channel(notification.order_id)]
        if notification.vendor_id is not None:
            channels.append(self.vendor_channel(notification.vendor_id))
        if notification.recipient_id is not None:
            channels.append(self.buyer_channel(notification.recipient_id))
        return channels

    async def subscribe_all(self, handler: NotificationHandler) -> None:
        await self._backend.subscribe(self.ALL_ORDERS_CHANNEL, handler)

    async def subscribe_vendor(self, vendor_id: int, handler: NotificationHandler) -> None:
        await self._backend.subscribe(self.vendor_channel(vendor_id), handler)

    async def subscribe_buyer(self, user_id: int, handler: NotificationHandler) -> None:
        await self._backend.subscribe(self.buyer_channel(user_id), handler)

    async def publish(self, notification: Notification) -> None:
        for channel in self.channels_for(notification):
            await self._backend.publish(channel, notification)

    async def notify_status_changed(
        self,
        order_id: int,
        status: str,
        *,
        previous_status: str | None = None,
        vendor_id: int | None = None,
        buyer_id: int | None = None,
        buyer_phone: str | None = None,
        buyer_name: str | None = None,
        total: str | None = None,
    ) -> Notification:
        notification = Notification(
            type=NotificationType.ORDER_STATUS_CHANGED,
            order_id=order_id,
            status=status,
            recipient_id=buyer_id,
            vendor_id=vendor_id,
            recipient_phone=buyer_phone,
            recipient_name=buyer_name,
            data={"previous_status": previous_status, "total": total},
        )
        await self.publish(notification)
        return notification

    async def notify_order_created(
        self, order_id: int, *, vendor_id: int | None, buyer_id: int | None, total: str
    ) -> Notification:
        notification = Notification(
            type=NotificationType.ORDER_CREATED,
            order_id=order_id,
            status="pending",
            recipient_id=buyer_id,
            vendor_id=vendor_id,
            data={"total": total},
        )
        await self.publish(notification)
        return notification

    async def notify_payment_verified(
        self, order_id: int, *, reference: str, vendor_id: int | None, buyer_id: int | None
    ) -> Notification:
        notification = Notification(
            type=NotificationType.PAYMENT_VERIFIED,
            order_id=order_id,
            status="completed",
            recipient_id=buyer_id,
            vendor_id=vendor_id,
            data={"reference": reference},
        )
        await self.publish(notification)
        return notification

    async def drain(self) -> None:
        await self._backend.drain()

    async def close(self) -> None:
        await self._backend.close()
