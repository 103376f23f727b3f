"""
SMS delivery for order status changes.

The notifier subscribes to order events and texts the buyer; the gateway
posts to the configured SMS provider over HTTP. Only Kenyan numbers are
accepted and messages are capped at one SMS segment.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import aiohttp

from agromarket.core.config import SmsConfig
from agromarket.core.exceptions import ValidationError
from agromarket.core.notifications import Notification, NotificationService, NotificationType
from agromarket.core.order_math import format_money
from agromarket.core.sanitize import parse_money

logger = logging.getLogger(__name__)

SMS_MAX_LENGTH = 160

_STATUS_PHRASES = {
    "pending": "has been received",
    "processing": "is being processed",
    "shipped": "has been shipped",
    "delivered": "has been delivered",
    "completed": "has been paid",
    "cancelled": "has been cancelled",
}

_KENYAN_MSISDN = re.compile(r"^254[17]\d{8}$")


def normalize_kenyan_phone(phone: str | None) -> str | None:
    """Return the number as ``2547XXXXXXXX``/``2541XXXXXXXX`` or None.

    Example:
        >>> normalize_kenyan_phone("0712 345 678")
        '254712345678'
    """
    if not phone:
        return None
    digits = re.sub(r"[\s\-()]", "", str(phone))
    if digits.startswith("+"):
        digits = digits[1:]
    if not digits.isdigit():
        return None
    if digits.startswith("0") and len(digits) == 10:
        digits = "254" + digits[1:]
    elif len(digits) == 9 and digits[0] in "17":
        digits = "254" + digits
    return digits if _KENYAN_MSISDN.match(digits) else None


def truncate_sms(text: str, max_length: int = SMS_MAX_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3].rstrip() + "..."


def build_status_sms(
    order_id: int,
    status: str,
    *,
    brand: str = "SmartLivestock",
    buyer_name: str | None = None,
    total: Any = None,
    currency: str = "KES",
    max_length: int = SMS_MAX_LENGTH,
) -> str:
    phrase = _STATUS_PHRASES.get(status, f"is now {status}")
    greeting = f"Hi {buyer_name.strip()}, " if buyer_name and buyer_name.strip() else ""
    lines = [f"{brand}: {greeting}your order #{order_id} {phrase}."]
    if total is not None:
        try:
            lines.append(f"Total: {format_money(parse_money(total, 'total'), currency)}")
        except ValidationError:
            pass
    return truncate_sms("\n".join(lines), max_length)


class SmsGateway:
    """HTTP client for the SMS provider."""

    def __init__(self, config: SmsConfig, timeout: float = 10.0) -> None:
        self.config = config
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def send(self, phone: str, message: str) -> bool:
        """Send one SMS. Returns False (and logs) on any delivery failure."""
        if not self.config.enabled:
            logger.debug("SMS disabled, skipping message to %s", phone)
            return False

        to = normalize_kenyan_phone(phone)
        if to is None:
            logger.warning("Skipping SMS: %r is not a Kenyan mobile number", phone)
            return False

        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        payload = {
            "to": to,
            "message": truncate_sms(message, self.config.max_length),
            "sender_id": self.config.sender_id,
        }

        session = await self._get_session()
        try:
            async with session.post(self.config.api_url, json=payload, headers=headers) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    logger.warning("SMS provider returned %s: %s", resp.status, body[:200])
                    return False
                logger.info("SMS sent to %s via %s", to, self.config.provider)
                return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("SMS send failed: %s", e)
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()


class SmsNotifier:
    """Texts the buyer when a vendor changes an order's status."""

    def __init__(
        self,
        gateway: SmsGateway,
        brand: str = "SmartLivestock",
        currency: str = "KES",
    ) -> None:
        self.gateway = gateway
        self.brand = brand
        self.currency = currency

    async def attach(self, notifications: NotificationService) -> None:
        await notifications.subscribe_all(self.handle)

    async def handle(self, notification: Notification) -> None:
        if notification.type != NotificationType.ORDER_STATUS_CHANGED:
            return
        if not notification.recipient_phone:
            logger.debug("Order #%s has no buyer phone, no SMS sent", notification.order_id)
            return
        message = build_status_sms(
            notification.order_id,
            notification.status,
            brand=self.brand,
            buyer_name=notification.recipient_name,
            total=notification.data.get("total"),
            currency=self.currency,
            max_length=self.gateway.config.max_length,
        )
        await self.gateway.send(notification.recipient_phone, message)
