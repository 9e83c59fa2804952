from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Tuple, Type, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def compute_backoff(
    attempt: int, base: float = 1.5, jitter: float = 0.5, max_delay: float = 20.0
) -> float:
    """Exponential backoff with jitter, capped at ``max_delay`` seconds."""
    delay = min(base ** attempt, max_delay)
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int) -> None:
    """Sleep for the computed backoff delay before the next attempt."""
    await asyncio.sleep(compute_backoff(attempt))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    retries: int,
    retry_on: Tuple[Type[BaseException], ...],
    label: str = "operation",
) -> T:
    """Run ``operation`` and retry up to ``retries`` times on ``retry_on`` errors.

    The last error is re-raised once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= retries:
                raise
            attempt += 1
            logger.warning(f"{label} failed ({exc}); retry {attempt}/{retries}")
            await schedule_retry(attempt)
