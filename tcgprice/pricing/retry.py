"""
TCG Price Aggregator - Retry Policy

Bounded retry with linear backoff: the wait before attempt n+1 is
base_delay * n. The last attempt's exception is re-raised unwrapped.
NotFound and PolicyDenied are final and never retried.

Every adapter call is wrapped individually so one platform's retries
never delay another platform.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from tcgprice.errors import NON_RETRYABLE

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _is_retryable(error: BaseException) -> bool:
    # CancelledError is a BaseException and must propagate at once
    return isinstance(error, Exception) and not isinstance(error, NON_RETRYABLE)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retry_scheduled",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
        error=str(error),
        error_type=type(error).__name__,
    )


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Await `fn()` up to `max_attempts` times.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt.
        max_attempts: Total attempts including the first (>= 1).
        base_delay: Seconds; wait after attempt n is base_delay * n.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The first successful result.

    Raises:
        The exception of the final attempt, or a non-retryable error immediately.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=base_delay, increment=base_delay),
        retry=retry_if_exception(_is_retryable),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            result = await fn()
    return result
