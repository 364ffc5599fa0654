"""
Retry executor for fallible async operations.

Attempts an operation up to ``max_retries + 1`` times with exponential backoff
and +/-25% jitter between attempts. The conditional variant consults a
predicate after each failure and stops early when it says the error is not
retryable. A timeout wrapper turns an overrun into ``OperationTimeoutError``,
which is itself retryable.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import aiohttp
import structlog

from .config import RetryConfig
from .errors import OperationTimeoutError, RetryExhaustedError
from .logging import get_logger

T = TypeVar("T")

RetryCondition = Callable[[BaseException, int], bool]

MIN_DELAY_MS = 100.0
MAX_DELAY_MS = 30000.0
JITTER_RATIO = 0.25

RETRYABLE_STATUS_CODES = (500, 502, 503, 504, 429, 408)
NON_RETRYABLE_STATUS_CODES = (400, 401, 403, 404, 409)
NETWORK_ERROR_HINTS = ("network", "timeout", "timed out", "econnreset", "enotfound", "etimedout")
RATE_LIMIT_HINTS = ("rate limit", "too many requests", "429", "quota exceeded", "limit exceeded")


class RetryExecutor:
    """Runs async operations with bounded retry, backoff and timeouts."""

    def __init__(
        self,
        config: RetryConfig | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.config = config or RetryConfig()
        self.logger = logger or get_logger(__name__)
        self._sleep = sleep
        self._rng = rng or random.Random()

    def calculate_delay(self, attempt: int, config: RetryConfig | None = None) -> float:
        """Backoff delay in milliseconds after a failed attempt (1-indexed)."""
        config = config or self.config
        exponential = config.base_delay_ms * config.backoff_multiplier ** (attempt - 1)
        jitter = exponential * JITTER_RATIO * self._rng.uniform(-1.0, 1.0)
        return min(MAX_DELAY_MS, max(MIN_DELAY_MS, exponential + jitter))

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig | None = None,
        operation_name: str = "operation",
    ) -> T:
        """Retry on any failure until the attempt limit is reached."""
        return await self._execute(operation, None, config or self.config, operation_name)

    async def with_retry_condition(
        self,
        operation: Callable[[], Awaitable[T]],
        should_retry: RetryCondition,
        config: RetryConfig | None = None,
        operation_name: str = "operation",
    ) -> T:
        """Retry only while ``should_retry(error, attempt)`` allows it."""
        return await self._execute(operation, should_retry, config or self.config, operation_name)

    async def with_timeout(
        self,
        operation: Callable[[], Awaitable[T]],
        timeout_ms: float,
        operation_name: str = "operation",
    ) -> T:
        """Race the operation against a deadline.

        Only the deadline set here becomes an OperationTimeoutError; timeouts
        raised by the operation itself propagate unchanged.
        """
        deadline = asyncio.timeout(timeout_ms / 1000)
        try:
            async with deadline:
                return await operation()
        except TimeoutError as e:
            if not deadline.expired():
                raise
            self.logger.error(
                "Operation timed out", operation=operation_name, timeout_ms=timeout_ms
            )
            raise OperationTimeoutError(operation_name, timeout_ms) from e

    async def with_timeout_and_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        timeout_ms: float,
        config: RetryConfig | None = None,
        operation_name: str = "operation",
        should_retry: RetryCondition | None = None,
    ) -> T:
        """Apply the deadline to every attempt and retry failures."""
        async def attempt() -> T:
            return await self.with_timeout(operation, timeout_ms, operation_name)

        return await self._execute(
            attempt, should_retry, config or self.config, f"{operation_name} (with timeout)"
        )

    async def _execute(
        self,
        operation: Callable[[], Awaitable[T]],
        should_retry: RetryCondition | None,
        config: RetryConfig,
        operation_name: str,
    ) -> T:
        total_attempts = config.max_retries + 1
        last_error: BaseException | None = None
        attempt = 0

        while attempt < total_attempts:
            attempt += 1
            try:
                result = await operation()
            except Exception as e:
                last_error = e
            else:
                if attempt > 1:
                    self.logger.info(
                        "Operation succeeded after retry",
                        operation=operation_name,
                        attempt=attempt,
                    )
                return result

            if should_retry is not None and not should_retry(last_error, attempt):
                self.logger.info(
                    "Retry stopped by condition",
                    operation=operation_name,
                    attempt=attempt,
                    error=str(last_error),
                )
                break

            if attempt < total_attempts:
                delay_ms = self.calculate_delay(attempt, config)
                self.logger.warning(
                    "Retry attempt failed",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=total_attempts,
                    delay_ms=round(delay_ms),
                    error=str(last_error),
                )
                await self._sleep(delay_ms / 1000)
            else:
                self.logger.error(
                    "All retry attempts failed",
                    operation=operation_name,
                    attempts=attempt,
                    error=str(last_error),
                )

        raise RetryExhaustedError(attempt, last_error, operation_name) from last_error


def _status_of(error: BaseException) -> int | None:
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def http_retry_condition() -> RetryCondition:
    """Retry 5xx, 429, 408 and network failures; never 400/401/403/404/409."""
    logger = get_logger(__name__)

    def should_retry(error: BaseException, attempt: int) -> bool:
        message = str(error).lower()
        status = _status_of(error)

        if status is not None:
            has_non_retryable = status in NON_RETRYABLE_STATUS_CODES
            has_retryable = status in RETRYABLE_STATUS_CODES or 500 <= status < 600
            is_network_error = False
        elif isinstance(error, (TimeoutError, aiohttp.ClientConnectionError, aiohttp.ClientPayloadError)):
            # typed transport failures carry no status; message digits are not status codes
            has_non_retryable = False
            has_retryable = False
            is_network_error = True
        else:
            has_non_retryable = any(str(code) in message for code in NON_RETRYABLE_STATUS_CODES)
            has_retryable = any(str(code) in message for code in RETRYABLE_STATUS_CODES)
            is_network_error = any(hint in message for hint in NETWORK_ERROR_HINTS)

        retry = (has_retryable or is_network_error) and not has_non_retryable
        logger.debug(
            "HTTP retry decision",
            retry=retry,
            attempt=attempt,
            status=status,
            error=message[:100],
        )
        return retry

    return should_retry


def rate_limit_condition() -> RetryCondition:
    """Retry only when the error looks like an API rate limit."""
    logger = get_logger(__name__)

    def should_retry(error: BaseException, attempt: int) -> bool:
        if _status_of(error) == 429:
            return True
        message = str(error).lower()
        if any(hint in message for hint in RATE_LIMIT_HINTS):
            logger.warning("API rate limit detected, retrying", attempt=attempt)
            return True
        return False

    return should_retry


def any_condition(*conditions: RetryCondition) -> RetryCondition:
    """Combine predicates; retry when any of them allows it."""
    def should_retry(error: BaseException, attempt: int) -> bool:
        return any(condition(error, attempt) for condition in conditions)

    return should_retry
