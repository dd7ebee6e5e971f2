"""Bounded retry policy used by sinks that talk to the network."""

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from src.utils.logger import get_logger

logger = get_logger("calendar_relay.relay.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Max attempts plus an exponential backoff schedule, capped at max_delay."""

    max_attempts: int = 3
    base_delay: float = 0.5
    factor: float = 2.0
    max_delay: float = 30.0

    def delays(self) -> Iterator[float]:
        """Sleep before each retry; yields max_attempts - 1 values."""
        for attempt in range(max(self.max_attempts, 1) - 1):
            yield min(self.base_delay * (self.factor**attempt), self.max_delay)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Callable[[Exception], bool],
    name: str = "operation",
) -> T:
    """Run operation, retrying exceptions accepted by retry_on per policy.

    The last exception is re-raised once attempts are exhausted. Cancellation
    during a backoff sleep propagates immediately.
    """
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as e:
            if not retry_on(e):
                raise
            delay = next(delays, None)
            if delay is None:
                logger.warning("retry.exhausted", operation=name, attempts=attempt, error=str(e))
                raise
            logger.debug(
                "retry.backoff",
                operation=name,
                attempt=attempt,
                delay=delay,
                error_type=type(e).__name__,
            )
            await asyncio.sleep(delay)
