"""Retry utilities for async operations.

``RetryPolicy`` drives model calls: it retries only the errors its
predicate selects (rate limits by default), reports every retry to a
callback before sleeping, and re-raises the last error unchanged once the
retries are exhausted. ``async_retry`` is a decorator form used for local
side effects such as telemetry writes.
"""

from __future__ import annotations

import asyncio
import functools
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..logging import get_logger
from .errors import is_rate_limit_error

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_MULTIPLIER = 2.0


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for one fallible async call.

    Attributes:
        max_retries: Retries after the first attempt; ``max_retries + 1``
            attempts are made in total.
        initial_delay: Delay in seconds before the first retry.
        multiplier: Growth factor applied to the delay on each retry.
        jitter: Add up to one second of random delay.
        retry_on: Predicate selecting retryable errors.
        sleep: Coroutine used to wait; replaceable in tests.
    """
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = DEFAULT_INITIAL_DELAY
    multiplier: float = DEFAULT_MULTIPLIER
    jitter: bool = False
    retry_on: Callable[[BaseException], bool] = is_rate_limit_error
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0-based)."""
        delay = self.initial_delay * (self.multiplier ** retry_index)
        if self.jitter:
            delay += random.uniform(0, 1)
        return delay

    async def call(
        self,
        func: Callable[[], Awaitable[T]],
        on_retry: Optional[Callable[[BaseException, int], None]] = None,
        operation: str = "operation",
    ) -> T:
        """Await ``func()``, retrying selected errors with backoff.

        Args:
            func: Zero-argument callable returning a fresh awaitable per attempt.
            on_retry: Called with ``(error, retry_number)`` before each delay.
            operation: Name used in log messages.

        Returns:
            The result of the first successful attempt.

        Raises:
            The last error, unchanged, when it is not retryable or when all
            retries are used up.
        """
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as e:
                if not self.retry_on(e):
                    raise
                if attempt >= self.max_retries:
                    logger.error(
                        "Retries exhausted",
                        operation=operation,
                        attempts=attempt + 1,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise
                delay = self.delay_for(attempt)
                attempt += 1
                if on_retry is not None:
                    on_retry(e, attempt)
                logger.warning(
                    "Retryable error, backing off",
                    operation=operation,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    delay_seconds=round(delay, 2),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self.sleep(delay)


def async_retry(
    max_retries: int = 3,
    base_delay: float = 0.1,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    non_retryable_exceptions: tuple[type[Exception], ...] = (),
    jitter: bool = False,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Async retry decorator with exponential backoff.

    Args:
        max_retries: Maximum number of attempts (including the first).
        base_delay: Base delay in seconds; delay = base_delay * 2 ** attempt.
        retryable_exceptions: Exception types that trigger a retry.
        non_retryable_exceptions: Exception types raised immediately, even
            when they also match ``retryable_exceptions``.
        jitter: Whether to add random jitter (0-1 seconds) to the delay.

    Example:
        >>> @async_retry(max_retries=3, retryable_exceptions=(OSError,))
        ... async def append_line(path, line):
        ...     ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except non_retryable_exceptions:
                    raise
                except retryable_exceptions as e:
                    if attempt >= max_retries - 1:
                        logger.error(
                            "Retries exhausted",
                            operation=func.__name__,
                            attempts=max_retries,
                            error=str(e),
                        )
                        raise
                    delay = base_delay * (2 ** attempt)
                    if jitter:
                        delay += random.uniform(0, 1)
                    logger.warning(
                        "Retryable error, backing off",
                        operation=func.__name__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay_seconds=round(delay, 2),
                        error=str(e),
                    )
                    await asyncio.sleep(delay)
            raise RuntimeError(f"async_retry: exhausted retries for {func.__name__}")  # pragma: no cover

        return wrapper

    return decorator
