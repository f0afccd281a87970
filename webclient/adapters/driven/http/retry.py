"""Retry logic for transient invocation failures.

The client itself never retries; this decorator is meant for API methods of
WebClient subclasses.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from webclient.ports.errors import CommunicationError, LimitTimeoutError

__all__ = ["retry", "RETRYABLE_ERRORS"]

logger = logging.getLogger(__name__)

# Failures where retrying later may succeed
RETRYABLE_ERRORS = (
    CommunicationError,  # Connection refused, DNS failed, transport timeout
    LimitTimeoutError,  # Limit token not granted in time
)

P = ParamSpec("P")
R = TypeVar("R")


def retry(
    times: int = 3,
    delay_sec: tuple[float, ...] = (0.2, 0.5, 1.0),
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorate async call with growing-delay retry.

    Retries on transient errors (communication, limit timeout) but not on
    cancellation or any other error.

    Args:
        times: Number of attempts (1 = no retry).
        delay_sec: Delays between attempts in seconds.

    Returns:
        Decorator function.

    Example:
        class MyApi(WebClient):
            @retry(times=3, delay_sec=(0.2, 0.5, 1.0))
            async def ip(self) -> str:
                return (await self.get(None, "ip")).body_as_json["origin"]
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            for attempt in range(times):
                try:
                    return await func(*args, **kwargs)
                except RETRYABLE_ERRORS as e:
                    if attempt == times - 1:
                        logger.debug(f"Retry exhausted after {times} attempts: {e}")
                        raise
                    delay_idx = min(attempt, len(delay_sec) - 1)
                    logger.debug(f"Attempt {attempt + 1} failed ({e}), retrying in {delay_sec[delay_idx]}s")
                    await asyncio.sleep(delay_sec[delay_idx])

            raise RuntimeError("Retry wrapper exhausted")

        return wrapper

    return decorator
