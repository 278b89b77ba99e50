"""Exponential backoff retry for async calls."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: float = 1.0,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Compute the delay before the next attempt.

    Args:
        attempt: Zero-based index of the attempt that just failed
        base_delay: Base delay in seconds
        max_delay: Upper bound for the returned delay in seconds
        jitter: Maximum random jitter added to the delay in seconds
        rng: Optional random generator (for reproducible tests)

    Returns:
        Delay in seconds: min(base * 2^attempt + uniform(0, jitter), max_delay)
    """
    rand = rng.random() if rng is not None else random.random()
    delay = base_delay * (2 ** attempt) + rand * jitter
    return min(delay, max_delay)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    should_retry: Callable[[BaseException], bool],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``func()`` until it succeeds, retrying classified failures.

    Only exceptions for which ``should_retry`` returns True are retried; any
    other exception, or the failure of the final attempt, propagates.

    Args:
        func: Zero-argument coroutine factory performing one attempt
        should_retry: Classifier deciding whether an exception is retryable
        max_attempts: Total number of attempts (at least 1)
        base_delay: Base backoff delay in seconds
        max_delay: Maximum backoff delay in seconds
        sleep: Awaitable sleep function (injected by tests)

    Returns:
        The result of the first successful attempt
    """
    attempts = max(1, max_attempts)
    for attempt in range(attempts):
        try:
            return await func()
        except Exception as e:
            if not should_retry(e) or attempt == attempts - 1:
                raise
            delay = compute_backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                f"Attempt {attempt + 1}/{attempts} failed: {e}. Retrying in {delay:.1f}s"
            )
            await sleep(delay)
    # Unreachable: the loop either returns or raises
    raise RuntimeError("retry loop exited without result")
