"""Bounded exponential backoff for async feed operations."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from builder_trade_sync.ingestor.errors import extract_status, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 4
DEFAULT_BASE_DELAY = 0.4
DEFAULT_MAX_JITTER = 0.2
DEFAULT_MAX_DELAY = 6.0


@dataclass
class RetryPolicy:
    """Retry an async operation on transient failures.

    Attempt ``n`` (0-based) that fails with a retryable status waits
    ``min(base_delay * 2**n + jitter, max_delay)`` before the next attempt.
    Non-retryable failures and the failure of the final attempt propagate
    unchanged.

    Example:
        >>> policy = RetryPolicy()
        >>> page = await policy.call(lambda: client.fetch_page(cursor))
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_jitter: float = DEFAULT_MAX_JITTER
    max_delay: float = DEFAULT_MAX_DELAY
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    jitter: Callable[[float, float], float] = field(default=random.uniform)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2**attempt) + self.jitter(0.0, self.max_jitter), self.max_delay)

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= self.max_retries or not is_retryable(e):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Attempt %d/%d failed (status=%s): %s. Retrying in %.2f seconds...",
                    attempt + 1,
                    self.max_retries + 1,
                    extract_status(e),
                    e,
                    delay,
                )
                await self.sleep(delay)
                attempt += 1
