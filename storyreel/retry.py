# File: storyreel/retry.py
"""
Retry policy for fallible coroutines.

Wraps an async operation with bounded retries and exponential backoff. Errors
whose message marks them as non-recoverable (content policy, authentication,
invalid parameters) abort immediately.

Delay before attempt k (k >= 2) is initial_delay_ms * backoff_multiplier ** (k - 2).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar, Generic, List

T = TypeVar("T")

NON_RECOVERABLE_MARKERS = (
    # content policy / moderation
    "content_policy_violation",
    "content could not be processed",
    # authentication
    "unauthorized",
    "invalid api key",
    "authentication failed",
    # invalid parameters
    "invalid parameter",
    "validation error",
)

logger = logging.getLogger(__name__)


def is_non_recoverable_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in NON_RECOVERABLE_MARKERS)


@dataclass
class RetryOptions:
    max_attempts: int = 3
    initial_delay_ms: float = 2000
    backoff_multiplier: float = 2.0
    should_retry: Optional[Callable[[BaseException], bool]] = None
    on_retry: Optional[Callable[[int, BaseException], None]] = None

    def delay_before_attempt(self, attempt: int) -> float:
        """Milliseconds waited before `attempt` (1-based). Zero for the first attempt."""
        if attempt <= 1:
            return 0.0
        return self.initial_delay_ms * self.backoff_multiplier ** (attempt - 2)


@dataclass
class RetryOutcome(Generic[T]):
    value: T
    attempts: int
    delays_ms: List[float]


async def retry_with_outcome(operation: Callable[[], Awaitable[T]],
                             options: Optional[RetryOptions] = None,
                             sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> RetryOutcome[T]:
    """
    Runs `operation` until it succeeds, the attempts are used up, or a
    non-retryable error is raised. The last error propagates unchanged.

    Args:
        operation: Zero-argument coroutine factory. Called once per attempt.
        options: Retry tuning. Defaults to 3 attempts, 2000 ms, x2.
        sleep: Coroutine taking seconds. Injectable for tests.
    """
    options = options or RetryOptions()
    max_attempts = max(1, options.max_attempts)
    current_delay = options.initial_delay_ms
    delays: List[float] = []

    attempt = 1
    while True:
        try:
            value = await operation()
            return RetryOutcome(value=value, attempts=attempt, delays_ms=delays)
        except Exception as e:
            if options.should_retry is not None:
                retryable = options.should_retry(e)
            else:
                retryable = not is_non_recoverable_error(e)

            if not retryable:
                logger.warning(f"Non-recoverable error, not retrying: {e}")
                raise
            if attempt >= max_attempts:
                logger.debug(f"Giving up after {attempt} attempt(s): {e}")
                raise

            if options.on_retry:
                options.on_retry(attempt, e)
            delays.append(current_delay)
            await sleep(current_delay / 1000)
            current_delay *= options.backoff_multiplier
            attempt += 1


async def retry_async(operation: Callable[[], Awaitable[T]],
                      options: Optional[RetryOptions] = None,
                      sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> T:
    outcome = await retry_with_outcome(operation, options, sleep)
    return outcome.value


def logged_retry_options(label: str, max_attempts: int = 3, initial_delay_ms: float = 2000,
                         backoff_multiplier: float = 2.0, log: logging.Logger = logger) -> RetryOptions:
    """RetryOptions whose observer logs each failed attempt and the upcoming wait."""
    def _on_retry(attempt: int, error: BaseException):
        wait_ms = initial_delay_ms * backoff_multiplier ** (attempt - 1)
        log.warning(f"{label}: attempt {attempt}/{max_attempts} failed: {error}. Retrying in {wait_ms:.0f}ms...")

    return RetryOptions(max_attempts=max_attempts, initial_delay_ms=initial_delay_ms,
                        backoff_multiplier=backoff_multiplier, on_retry=_on_retry)
