from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from ..errors import IngestError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt)
    await asyncio.sleep(delay)


async def retry_transient(
    operation: Callable[[], Awaitable[T]], max_attempts: int = 3
) -> T:
    """Run ``operation`` until it succeeds or fails with a non-retryable error.

    Only errors whose ``retryable`` flag is set are retried, so the operation
    must be safe to repeat.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except IngestError as exc:
            if not exc.retryable or attempt >= max_attempts:
                raise
            logger.warning(f"Attempt {attempt}/{max_attempts} failed ({exc.code}): {exc}; retrying")
            await schedule_retry(attempt)
