"""
Bounded retry with backoff for transient failures.

Only exceptions listed in `retry_on` are retried; anything else propagates on
the first attempt. After the last attempt the final exception propagates.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from domain.errors import TransientStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, base_delay: float, strategy: str = "linear", max_delay: float = 10.0) -> float:
    """
    Delay before retrying after `attempt` (1-based) failed.

    linear: base * attempt; exponential: base * 2 ** (attempt - 1). Capped at max_delay.
    """

    if strategy == "exponential":
        delay = base_delay * (2 ** (attempt - 1))
    elif strategy == "linear":
        delay = base_delay * attempt
    else:
        raise ValueError(f"Unknown backoff strategy: {strategy!r}")
    return min(delay, max_delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    strategy: str = "linear",
    retry_on: Tuple[Type[BaseException], ...] = (TransientStorageError,),
    description: str = "operation",
    sleep: Optional[SleepFn] = None,
) -> T:
    """
    Run `operation` up to `attempts` times.

    Args:
        operation: zero-argument coroutine factory (called once per attempt)
        attempts: total attempts, >= 1
        base_delay: seconds, scaled by the backoff strategy
        retry_on: exception types considered transient
        sleep: injectable sleep (tests pass a no-op)
    """

    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    do_sleep = sleep or asyncio.sleep

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= attempts:
                logger.error(
                    f"{description} failed after {attempts} attempt(s)",
                    extra={"attempts": attempts, "error": str(exc)},
                )
                raise
            delay = backoff_delay(attempt, base_delay, strategy)
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}), retrying in {delay:.2f}s",
                extra={"attempt": attempt, "error": str(exc)},
            )
            await do_sleep(delay)

    raise AssertionError("unreachable")


__all__ = ["backoff_delay", "retry_async"]
