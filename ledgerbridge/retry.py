"""
Retry with exponential backoff for async ledger calls.

Only transient failures are retried: transport errors and HTTP 5xx.
4xx responses are never retried.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import aiohttp

from .errors import LedgerNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_error(error: BaseException) -> bool:
    """Default retry predicate: network failures and 5xx responses."""
    if isinstance(error, (LedgerNetworkError, aiohttp.ClientConnectionError, asyncio.TimeoutError)):
        return True
    if "Network Error" in str(error):
        return True
    status = getattr(error, "status", None)
    return isinstance(status, int) and status >= 500


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry budget.

    Total attempts are max_retries + 1. The delay before retry n is
    initial_delay_ms * 2**n, capped at max_delay_ms.
    """
    max_retries: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 10_000
    should_retry: Callable[[BaseException], bool] = is_transient_error

    def delays_ms(self) -> list[int]:
        """The sequence of delays a fully failing operation would wait."""
        delays = []
        delay = self.initial_delay_ms
        for _ in range(self.max_retries):
            delays.append(min(delay, self.max_delay_ms))
            delay = min(delay * 2, self.max_delay_ms)
        return delays


# Queries are idempotent and get the generous budget.
QUERY_RETRY_POLICY = RetryPolicy(max_retries=3, initial_delay_ms=1000, max_delay_ms=10_000)
COMMAND_RETRY_POLICY = RetryPolicy(max_retries=1, initial_delay_ms=1000, max_delay_ms=5000)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = QUERY_RETRY_POLICY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, BaseException, int], None]] = None,
) -> T:
    """
    Run ``operation`` until it succeeds or the retry budget is spent.

    Args:
        operation: Zero-argument coroutine factory
        policy: Retry budget and predicate
        sleep: Awaitable sleep taking seconds
        on_retry: Called as (attempt, error, delay_ms) before each wait

    Returns:
        The operation's result

    Raises:
        The last error raised by the operation
    """
    delays = policy.delays_ms()
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= len(delays) or not policy.should_retry(e):
                raise

            wait_ms = delays[attempt]
            logger.warning(
                f"Attempt {attempt + 1}/{len(delays) + 1} failed: {e}, "
                f"retrying in {wait_ms}ms"
            )
            if on_retry is not None:
                on_retry(attempt, e, wait_ms)

            await sleep(wait_ms / 1000)
            attempt += 1


def with_retry(policy: RetryPolicy = QUERY_RETRY_POLICY):
    """Decorator applying retry_with_backoff to an async function."""
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            return await retry_with_backoff(lambda: fn(*args, **kwargs), policy)
        return wrapper
    return decorator


class ExponentialBackoff:
    """Doubling delay for reconnect loops."""

    def __init__(self, min_seconds: float = 1.0, max_seconds: float = 60.0):
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self._current = min_seconds

    def reset(self) -> None:
        """Reset backoff to minimum."""
        self._current = self.min_seconds

    def next(self) -> float:
        """Get next backoff duration and increase for next time."""
        current = self._current
        self._current = min(self._current * 2, self.max_seconds)
        return current
