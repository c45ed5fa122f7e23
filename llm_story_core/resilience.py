"""
Retry and cancellation helpers for upstream calls.

Cancellation is expressed two ways, both honored everywhere:
- ordinary asyncio task cancellation (``task.cancel()``)
- an optional ``asyncio.Event`` cancel signal passed down by the caller

When the cancel signal fires, the in-flight operation is cancelled and
``asyncio.CancelledError`` is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from constants import RETRY_BACKOFF_MULTIPLIER, RETRY_BASE_DELAY_SECONDS, RETRY_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, float, Exception], None]


def raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    """Raise CancelledError if the cancel signal has already fired."""
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError("Operation cancelled by caller")


async def sleep_cancellable(delay: float, cancel_event: Optional[asyncio.Event] = None) -> None:
    """Sleep for ``delay`` seconds, waking early and raising if cancelled."""
    if cancel_event is None:
        await asyncio.sleep(delay)
        return

    raise_if_cancelled(cancel_event)
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise asyncio.CancelledError("Operation cancelled by caller")


async def run_cancellable(awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event] = None) -> T:
    """
    Await ``awaitable``, aborting it as soon as ``cancel_event`` is set.

    Args:
        awaitable: The operation to run
        cancel_event: Optional cancel signal

    Returns:
        The operation's result

    Raises:
        asyncio.CancelledError: If the signal fired before the operation finished
    """
    if cancel_event is None:
        return await awaitable

    operation = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        operation.cancel()
        raise asyncio.CancelledError("Operation cancelled by caller")

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({operation, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not operation.done():
            operation.cancel()

    if operation.cancelled() or not operation.done():
        raise asyncio.CancelledError("Operation cancelled by caller")
    return operation.result()


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    Every ``Exception`` is treated as retryable. Cancellation is not an
    Exception and is never retried.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: Delay before the first retry, in seconds
        multiplier: Factor applied to the delay after each failed retry
    """

    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY_SECONDS
    multiplier: float = RETRY_BACKOFF_MULTIPLIER

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def delay_for(self, failed_attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt."""
        return self.base_delay * (self.multiplier ** (failed_attempt - 1))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        cancel_event: Optional[asyncio.Event] = None,
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds or attempts are exhausted.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            cancel_event: Optional cancel signal observed before, during and
                          between attempts
            on_retry: Called as ``on_retry(attempt, delay, error)`` before each backoff

        Returns:
            The first successful result

        Raises:
            Exception: The last error once every attempt has failed
            asyncio.CancelledError: If cancelled at any point
        """
        for attempt in range(1, self.max_attempts + 1):
            raise_if_cancelled(cancel_event)
            try:
                return await run_cancellable(operation(), cancel_event)
            except Exception as exc:
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                if on_retry is not None:
                    on_retry(attempt, delay, exc)
                else:
                    logger.warning("Attempt %d failed (%s); retrying in %.1fs", attempt, exc, delay)
                await sleep_cancellable(delay, cancel_event)

        raise AssertionError("unreachable")
