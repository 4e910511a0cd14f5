"""
Bounded retry for transient store faults.

Only faults marked ``retryable`` (store read/write failures) are retried;
everything else propagates on the first attempt. Exponential backoff:
``delay = min(base_delay * multiplier ** attempt, max_delay)``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .faults import Fault

logger = logging.getLogger("goproxy.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy for store operations.

    Args:
        max_attempts: Total attempts, including the first one.
        base_delay: Delay before the first retry, in seconds.
        multiplier: Backoff multiplier.
        max_delay: Upper bound on a single delay, in seconds.
    """

    max_attempts: int = 3
    base_delay: float = 0.05
    multiplier: float = 2.0
    max_delay: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")

    def delay(self, attempt: int) -> float:
        """Delay after the failed attempt number *attempt* (0-based)."""
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)

    async def run(
        self,
        operation: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        on_retry: Optional[Callable[[int, Fault], None]] = None,
        **kwargs: Any,
    ) -> T:
        """
        Await ``func(*args, **kwargs)``, retrying retryable faults.

        Args:
            operation: Label used in log messages.
            on_retry: Called with ``(attempt, fault)`` before each retry.

        Raises:
            Fault: The last fault once attempts are exhausted, or the first
                non-retryable one.
        """
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Fault as fault:
                if not fault.retryable or attempt + 1 >= self.max_attempts:
                    raise
                delay = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.3fs",
                    operation, attempt + 1, self.max_attempts, fault.message, delay,
                )
                if on_retry is not None:
                    on_retry(attempt + 1, fault)
                await asyncio.sleep(delay)
                attempt += 1


NO_RETRY = RetryPolicy(max_attempts=1)
