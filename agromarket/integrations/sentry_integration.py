"""
Sentry integration for error tracking.

Initialized once at startup when a DSN is configured. Errors logged at
ERROR level are sent as events.
"""
from __future__ import annotations

import logging

import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from agromarket import __version__
from agromarket.core.config import Settings

logger = logging.getLogger(__name__)


def init_sentry(settings: Settings) -> bool:
    """
    Initialize Sentry SDK for error tracking.

    Returns:
        True if Sentry was initialized, False otherwise.
    """
    if not settings.sentry_dsn:
        logger.info("Sentry DSN not configured, skipping initialization")
        return False

    logging_integration = LoggingIntegration(
        level=logging.INFO,  # breadcrumbs
        event_level=logging.ERROR,
    )

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1,
        integrations=[
            AioHttpIntegration(),
            logging_integration,
        ],
        send_default_pii=False,
        release=f"agromarket@{__version__}",
    )

    logger.info("Sentry initialized for environment: %s", settings.environment)
    return True


def capture_exception(error: BaseException, **extra) -> None:
    """Capture an exception with extra context."""
    with sentry_sdk.new_scope() as scope:
        for key, value in extra.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(error)


def set_user(user_id: int | None, role: str | None = None) -> None:
    """Set user context for Sentry events."""
    if user_id is None:
        return
    sentry_sdk.set_user({"id": str(user_id), "role": role})
