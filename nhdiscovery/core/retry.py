"""Backoff for rate-limited upstream calls.

The catalog answers 429 when queried too fast. Those are the only responses
worth retrying: anything else is a hard failure for that one request, and the
caller degrades it to an empty result.
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from nhdiscovery.core.errors import UpstreamRateLimited

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """How often and how patiently to retry."""

    max_attempts: int = 4  # First try plus 3 retries
    base_delay: float = 1.0  # Seconds before the first retry
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: float = 0.0  # Fraction of the delay, e.g. 0.1 = +/- 10%
    retryable_exceptions: tuple[type[BaseException], ...] = field(
        default_factory=lambda: (UpstreamRateLimited,)
    )

    @classmethod
    def for_rate_limits(cls, max_retries: int, base_delay: float) -> "RetryConfig":
        """Retry 429s max_retries times, doubling the wait from base_delay."""
        return cls(max_attempts=max_retries + 1, base_delay=base_delay)


def calculate_delay(attempt: int, config: RetryConfig, retry_after: float | None = None) -> float:
    """Delay before retry number attempt + 1.

    Grows as base_delay * exponential_base ** attempt. A Retry-After hint from
    upstream wins when it asks for a longer wait. Either way the result is
    capped at max_delay.
    """
    delay = config.base_delay * (config.exponential_base ** attempt)
    if retry_after is not None:
        delay = max(delay, retry_after)
    delay = min(delay, config.max_delay)

    if config.jitter:
        spread = delay * config.jitter
        delay += random.uniform(-spread, spread)

    return max(0.0, delay)


def async_retry(config: RetryConfig | None = None):
    """
    Retry an async callable on the configured exceptions.

    Usage:
        @async_retry(RetryConfig.for_rate_limits(3, 1.0))
        async def fetch_page():
            ...

    Non-retryable exceptions propagate on first sight. When attempts run out
    the last retryable exception is re-raised.
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except config.retryable_exceptions as e:
                    if attempt + 1 >= config.max_attempts:
                        logger.error(f"Giving up on {func.__name__} after {config.max_attempts} attempts: {e}")
                        raise

                    delay = calculate_delay(attempt, config, getattr(e, "retry_after", None))
                    attempt += 1
                    logger.warning(
                        f"{func.__name__} hit {type(e).__name__}, "
                        f"retry {attempt}/{config.max_attempts - 1} in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
