"""
Generic async retry loop over classified errors.
"""
import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from loguru import logger

from ..options import RetryConfig
from ..subtitles.errors import (
    ErrorCode,
    FetchError,
    PERMANENT_ERROR_CODES,
    SubtitleFetchException,
    error_from_exception,
)
from .fetcher import Sleep, compute_backoff_delay

T = TypeVar("T")

ShouldRetry = Callable[[FetchError, int, RetryConfig], bool]


@dataclass
class RetryAttempt:
    number: int
    delay: float  # Seconds waited before this attempt
    error: Optional[FetchError] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryOutcome(Generic[T]):
    success: bool
    result: Optional[T] = None
    error: Optional[FetchError] = None
    attempts: List[RetryAttempt] = field(default_factory=list)
    total_time: float = 0.0  # Seconds


def default_should_retry(error: FetchError, attempt: int, config: RetryConfig) -> bool:
    """Retry retryable, non-permanent errors; rate limits only in the first half"""
    if not error.retryable or error.code in PERMANENT_ERROR_CODES:
        return False
    if error.code == ErrorCode.RATE_LIMITED:
        return attempt <= config.max_attempts // 2
    return True


class RetryService:
    """
    Runs an async operation until it succeeds or the policy gives up.

    The operation receives the attempt number and signals a classified
    failure by raising SubtitleFetchException.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def with_config(self, **overrides) -> "RetryService":
        return RetryService(self.config.with_overrides(overrides), self._sleep, self._rng)

    async def execute(
        self,
        operation: Callable[[int], Awaitable[Any]],
        should_retry: Optional[ShouldRetry] = None
    ) -> RetryOutcome:
        should_retry = should_retry or default_should_retry
        started = time.monotonic()
        attempts: List[RetryAttempt] = []
        delay = 0.0
        last_error: Optional[FetchError] = None

        for number in range(1, self.config.max_attempts + 1):
            if number > 1:
                delay = self._delay_for(number, last_error)
                logger.debug(f"Waiting {delay:.2f}s before attempt {number}/{self.config.max_attempts}")
                await self._sleep(delay)

            attempt = RetryAttempt(number=number, delay=delay)
            attempts.append(attempt)
            try:
                result = await operation(number)
                return RetryOutcome(
                    success=True,
                    result=result,
                    attempts=attempts,
                    total_time=time.monotonic() - started,
                )
            except SubtitleFetchException as e:
                last_error = e.error
            except Exception as e:
                last_error = error_from_exception(e, "operation")
            attempt.error = last_error

            if number >= self.config.max_attempts or not should_retry(last_error, number, self.config):
                break
            logger.info(f"Attempt {number} failed ({last_error.code.value}), retrying")

        return RetryOutcome(
            success=False,
            error=last_error,
            attempts=attempts,
            total_time=time.monotonic() - started,
        )

    def _delay_for(self, number: int, last_error: Optional[FetchError]) -> float:
        delay = compute_backoff_delay(number, self.config, self._rng)
        if last_error is not None and last_error.retry_after:
            delay = max(delay, min(last_error.retry_after, self.config.max_delay))
        return delay
