"""
Bounded retries with exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

BASE_DELAY = 0.5
MAX_DELAY = 30.0

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int) -> float:
    """Delay in seconds after failed attempt number ``attempt`` (1-based)."""
    return min(BASE_DELAY * (2 ** max(attempt - 1, 0)), MAX_DELAY)


class RetryState:
    """
    Attempt bookkeeping for a single task.

    ``max_retries`` counts retries after the first attempt, so a task runs
    at most ``max_retries + 1`` times.
    """

    def __init__(self, max_retries: int):
        self.max_retries = max_retries
        self.attempt_count = 0
        self.last_error: Optional[BaseException] = None

    @property
    def exhausted(self) -> bool:
        return self.attempt_count > self.max_retries

    def record_failure(self, error: BaseException) -> None:
        self.last_error = error

    def next_delay(self) -> float:
        return backoff_delay(self.attempt_count)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    is_retryable: Callable[[BaseException], bool],
    sleep: Sleep = asyncio.sleep,
    label: str = "request",
) -> T:
    """
    Run ``operation`` until it succeeds, fails with a non-retryable error, or
    runs out of attempts. The last error is re-raised.
    """
    state = RetryState(max_retries)
    while True:
        state.attempt_count += 1
        try:
            return await operation()
        except Exception as e:
            state.record_failure(e)
            if not is_retryable(e) or state.exhausted:
                raise
            delay = state.next_delay()
            logger.info(
                f"{label} failed (attempt {state.attempt_count}/{state.max_retries + 1}): {e}. "
                f"Retrying in {delay:.1f}s"
            )
            await sleep(delay)
