"""
Retry with exponential backoff and jitter.

Used by the audit ledger client so a dropped connection or a 5xx from the
ledger is retried a bounded number of times before the write is given up.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    backoff_factor: float,
    jitter: bool,
) -> float:
    """Delay before retry number ``attempt`` (1-based)."""
    delay = min(base_delay * (backoff_factor ** (attempt - 1)), max_delay)
    if jitter:
        delay = random.uniform(0, delay)
    return delay


def async_exponential_backoff_retry(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
):
    """
    Decorator retrying an async function on ``exceptions``.

    The last exception is re-raised once ``max_attempts`` calls have failed.
    Exceptions outside ``exceptions`` propagate immediately.

    Example:
        @async_exponential_backoff_retry(max_attempts=3, base_delay=0.5)
        async def post_document():
            ...
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    result = await func(*args, **kwargs)
                except exceptions as exc:
                    attempt += 1
                    if attempt >= max_attempts:
                        logger.error(
                            "Max retries (%d) exceeded for %s: %s", max_attempts, func.__name__, exc
                        )
                        raise

                    delay = compute_delay(attempt, base_delay, max_delay, backoff_factor, jitter)
                    logger.warning(
                        "Retry %d/%d for %s after %.2fs delay: %s",
                        attempt, max_attempts, func.__name__, delay, exc,
                    )
                    if on_retry:
                        try:
                            on_retry(attempt, exc, delay)
                        except Exception as callback_exc:
                            logger.error("Retry callback failed: %s", callback_exc)

                    await asyncio.sleep(delay)
                    continue

                if attempt > 0:
                    logger.info("%s succeeded after %d retries", func.__name__, attempt)
                return result

        return wrapper

    return decorator


class RetryPolicy:
    """
    Bounded retry settings that can be applied to several coroutines.

    Example:
        policy = RetryPolicy(max_attempts=3, base_delay=0.5)

        @policy.async_retry()
        async def refresh():
            ...
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        backoff_factor: float = 2.0,
        jitter: bool = True,
        exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self.exceptions = exceptions

    def async_retry(self, on_retry: Optional[Callable[[int, Exception, float], None]] = None):
        return async_exponential_backoff_retry(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            backoff_factor=self.backoff_factor,
            jitter=self.jitter,
            exceptions=self.exceptions,
            on_retry=on_retry,
        )
