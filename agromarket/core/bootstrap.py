"""Application bootstrap wiring the API client, services and notifications."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from agromarket.core.config import Settings
from agromarket.core.notifications import InMemoryPubSub, NotificationService, RedisPubSub
from agromarket.core.session import SessionContext
from agromarket.integrations.marketplace_api import MarketplaceApi
from agromarket.integrations.payment_service import PaymentService
from agromarket.integrations.sentry_integration import init_sentry, set_user
from agromarket.integrations.sms import SmsGateway, SmsNotifier
from agromarket.logging_config import setup_logging
from agromarket.services.cart_service import CartService
from agromarket.services.catalog_service import CatalogService
from agromarket.services.checkout_service import CheckoutService
from agromarket.services.order_service import OrderService
from agromarket.services.seller_order_service import SellerOrderService

logger = logging.getLogger(__name__)


@dataclass
class Application:
    settings: Settings
    api: MarketplaceApi
    notifications: NotificationService
    payments: PaymentService
    catalog: CatalogService
    cart: CartService
    orders: OrderService
    seller_orders: SellerOrderService
    sms: SmsGateway | None = None

    def new_checkout(self) -> CheckoutService:
        return CheckoutService(
            self.cart,
            self.payments,
            notifications=self.notifications,
            buyer_id=self.api.context.user_id,
        )

    async def close(self) -> None:
        await self.notifications.close()
        if self.sms:
            await self.sms.close()
        await self.api.close()


def configure_runtime(settings: Settings) -> bool:
    """Process-wide setup: logging first, then error tracking."""
    setup_logging(settings.log_level)
    return init_sentry(settings)


async def build_application(settings: Settings, context: SessionContext) -> Application:
    """Create runtime components for one authenticated session."""
    api = MarketplaceApi.from_config(context, settings.api)
    set_user(context.user_id, context.role)

    # Priority 1: Redis (several workers share events)
    if settings.redis_url:
        backend = RedisPubSub(settings.redis_url)
        logger.info("Using Redis for order notifications")
    # Priority 2: Memory (single process)
    else:
        backend = InMemoryPubSub()
        logger.info("Using in-memory order notifications")
    notifications = NotificationService(backend)

    sms = None
    if settings.sms.enabled:
        sms = SmsGateway(settings.sms, timeout=settings.api.timeout)
        await SmsNotifier(
            sms, brand=settings.receipt_brand, currency=settings.payment.currency
        ).attach(notifications)
        logger.info("SMS notifications enabled via %s", settings.sms.provider)
    else:
        logger.info("SMS_API_URL not set, status SMS disabled")

    return Application(
        settings=settings,
        api=api,
        notifications=notifications,
        payments=PaymentService(
            api,
            unit_scales=settings.payment.unit_scales,
            verify_attempts=settings.payment.verify_retry_attempts,
        ),
        catalog=CatalogService(api),
        cart=CartService(api),
        orders=OrderService(api),
        seller_orders=SellerOrderService(
            api,
            context,
            notifications=notifications,
            enforce_transitions=settings.enforce_status_transitions,
        ),
        sms=sms,
    )
