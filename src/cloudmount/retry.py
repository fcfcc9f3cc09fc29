"""Retry policy with capped exponential backoff for async provider calls."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_attempts: Total attempts including the first one (default: 3)
        initial_delay: Delay in seconds before the first retry (default: 0.5)
        max_delay: Upper bound for any single delay (default: 10.0)
        backoff_factor: Multiplier applied per retry (default: 2.0)
    """

    max_attempts: int = 3
    initial_delay: float = 0.5
    max_delay: float = 10.0
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_factor < 1.0:
            raise ValueError("backoff_factor must be >= 1")

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-indexed)."""
        return min(self.initial_delay * (self.backoff_factor**attempt), self.max_delay)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    operation: str,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Await ``func()`` until it succeeds or the policy runs out of attempts.

    The last exception is re-raised once every attempt has failed.
    """
    for attempt in range(policy.max_attempts):
        try:
            return await func()
        except retry_on as e:
            if attempt + 1 >= policy.max_attempts:
                logger.error(
                    "%s failed after %d attempts: %s", operation, policy.max_attempts, e
                )
                raise
            delay = policy.calculate_delay(attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                operation,
                attempt + 1,
                policy.max_attempts,
                delay,
                e,
            )
            await sleep(delay)
    raise AssertionError("unreachable")
