"""Async retry logic with exponential backoff for idempotent calls."""
from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def async_retry(
    max_attempts: int | Callable[[Any], int] = 3,
    initial_delay: float = 0.2,
    max_delay: float = 5.0,
    exponential_base: float = 2.0,
    exceptions: tuple = (Exception,),
):
    """Retry decorator with exponential backoff for coroutine methods.

    Only wrap operations that are safe to repeat. ``max_attempts`` may be a
    callable receiving ``self`` so instances can configure it.

    Example:
        @async_retry(max_attempts=lambda self: self.verify_attempts,
                     exceptions=(BackendUnavailable,))
        async def verify(self, reference): ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempts = max_attempts(args[0]) if callable(max_attempts) else max_attempts
            attempts = max(1, int(attempts))
            delay = initial_delay
            last_exception: BaseException | None = None

            for attempt in range(attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < attempts - 1:
                        logger.warning(
                            "%s failed (attempt %s/%s): %s. Retrying in %.2fs...",
                            func.__name__,
                            attempt + 1,
                            attempts,
                            e,
                            delay,
                        )
                        await asyncio.sleep(delay)
                        delay = min(delay * exponential_base, max_delay)
                    else:
                        logger.error("%s failed after %s attempts: %s", func.__name__, attempts, e)

            raise last_exception

        return wrapper

    return decorator
