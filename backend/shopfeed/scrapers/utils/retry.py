"""Retry policy shared by the fetcher and the importer."""

import asyncio
import random
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

BackoffFn = Callable[[int], float]


def exponential_backoff(attempt: int) -> float:
    """Wait before retry number ``attempt`` (0-based).

    ``2 ** (attempt + 1)`` seconds plus up to one second of random jitter,
    so the first three retries wait roughly 2s, 4s and 8s.
    """
    return 2 ** (attempt + 1) + random.random()


def short_backoff(attempt: int) -> float:
    """Sub-second backoff for store write conflicts."""
    return 0.1 * (attempt + 1) + random.random() * 0.1


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retrying_operation",
        attempt=retry_state.attempt_number,
        wait_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
        error=str(exc) if exc else None,
        error_type=type(exc).__name__ if exc else None,
    )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    backoff_fn: BackoffFn = exponential_backoff,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or ``max_attempts`` is used up.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_attempts: Total attempts including the first one
        backoff_fn: Maps the 0-based retry number to a wait in seconds
        retry_on: Exception types that trigger a retry; anything else propagates
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Result of the first successful attempt

    Raises:
        The last exception once attempts are exhausted
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=lambda retry_state: backoff_fn(retry_state.attempt_number - 1),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
