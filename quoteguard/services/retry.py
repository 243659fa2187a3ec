"""
RetryExecutor - Retries transient failures with exponential backoff.

Provides:
- Exponential backoff with optional ±25% jitter, capped at max_delay
- Classification by ErrorKind and HTTP status; validation and
  authentication failures are never retried
- Optional circuit breaker that every attempt runs through
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from quoteguard.services.circuit_breaker import CircuitBreaker
from quoteguard.services.errors import (
    CircuitOpenError,
    ErrorKind,
    RetryExhaustedError,
    error_kind,
)

T = TypeVar("T")

JITTER_RATIO = 0.25

DEFAULT_RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.TIMEOUT,
        ErrorKind.RATE_LIMITED,
        ErrorKind.CONNECTION,
        ErrorKind.SERVER_ERROR,
    }
)

DEFAULT_RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay: float = 1.0  # Seconds before the first retry
    max_delay: float = 30.0  # Cap before jitter
    backoff_factor: float = 2.0
    jitter: bool = True
    retryable_kinds: frozenset[ErrorKind] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_KINDS
    )
    retryable_statuses: frozenset[int] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_STATUSES
    )
    circuit_breaker: CircuitBreaker | None = None
    on_retry: Callable[[Exception, int], None] | None = None


@dataclass
class RetryStats:
    """Per-call attempt record."""

    attempts: int = 0
    total_delay: float = 0.0
    last_error: Exception | None = None
    succeeded: bool = False

    @property
    def retries(self) -> int:
        """Attempts consumed beyond the first."""
        return max(0, self.attempts - 1)


@dataclass
class RetryOutcome(Generic[T]):
    """Successful result plus the attempt record that produced it."""

    value: T
    stats: RetryStats


def calculate_delay(
    attempt: int,
    config: RetryConfig,
    rng: random.Random | None = None,
) -> float:
    """
    Delay before the retry that follows `attempt` (1-indexed).

    The first retry waits exactly initial_delay.
    """
    delay = min(
        config.initial_delay * (config.backoff_factor ** (attempt - 1)),
        config.max_delay,
    )

    if config.jitter:
        spread = delay * JITTER_RATIO
        delay += (rng or random).uniform(-spread, spread)

    return max(0.0, delay)


def is_retryable(error: BaseException, config: RetryConfig) -> bool:
    """Determine if an error should be retried."""
    kind = error_kind(error)
    if kind in (ErrorKind.VALIDATION, ErrorKind.UNAUTHORIZED, ErrorKind.CIRCUIT_OPEN):
        return False
    if kind in config.retryable_kinds:
        return True
    status = getattr(error, "status", None)
    return isinstance(status, int) and status in config.retryable_statuses


class RetryExecutor:
    """
    Runs async operations with retry.

    Usage:
        executor = RetryExecutor(RetryConfig(max_attempts=3, circuit_breaker=breaker))

        results = await executor.retry(lambda: provider.search(query, 10))
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.config = config if config is not None else RetryConfig()
        self._sleep = sleep
        self._rng = rng

    async def retry(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig | None = None,
    ) -> T:
        """Run operation and return its result."""
        outcome = await self.run(operation, config)
        return outcome.value

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig | None = None,
    ) -> RetryOutcome[T]:
        """
        Run operation, returning the result together with its RetryStats.

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable error,
                or the breaker opened after at least one attempt
            CircuitOpenError: If the breaker was open before the first attempt
            Exception: The original error when it is not retryable
        """
        config = config if config is not None else self.config
        if config.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        breaker = config.circuit_breaker
        stats = RetryStats()

        for attempt in range(1, config.max_attempts + 1):
            if breaker is not None and breaker.is_open:
                logger.warning(
                    f"Circuit breaker '{breaker.service_id}' is open, failing fast "
                    f"before attempt {attempt}"
                )
                try:
                    value = await breaker.reject()
                except CircuitOpenError as e:
                    if stats.attempts == 0:
                        raise
                    # Keep the count of calls that did reach the operation
                    raise RetryExhaustedError(stats.attempts, stats.total_delay, e) from e
                stats.succeeded = True
                return RetryOutcome(value=value, stats=stats)

            stats.attempts = attempt
            try:
                if breaker is not None:
                    value = await breaker.execute(operation)
                else:
                    value = await operation()
            except Exception as e:
                stats.last_error = e

                if not is_retryable(e, config):
                    logger.warning(f"Non-retryable error on attempt {attempt}: {e}")
                    raise

                if attempt >= config.max_attempts:
                    logger.error(
                        f"All {config.max_attempts} attempts failed "
                        f"({stats.total_delay:.2f}s total backoff): {e}"
                    )
                    raise RetryExhaustedError(attempt, stats.total_delay, e) from e

                if breaker is not None and breaker.is_open:
                    continue

                delay = calculate_delay(attempt, config, self._rng)
                stats.total_delay += delay

                if config.on_retry:
                    try:
                        config.on_retry(e, attempt)
                    except Exception as callback_error:
                        logger.error(f"on_retry callback failed: {callback_error}")

                logger.warning(
                    f"Attempt {attempt}/{config.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
            else:
                stats.succeeded = True
                if attempt > 1:
                    logger.info(
                        f"Retry succeeded on attempt {attempt} "
                        f"after {stats.total_delay:.2f}s backoff"
                    )
                return RetryOutcome(value=value, stats=stats)


async def retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
) -> T:
    """Run operation with retry using a one-off executor."""
    return await RetryExecutor(config).retry(operation)


def create_retry_wrapper(
    config: RetryConfig,
) -> Callable[[Callable[[], Awaitable[T]]], Awaitable[T]]:
    """Bind a config once and reuse it for many operations."""
    executor = RetryExecutor(config)

    def wrapper(operation: Callable[[], Awaitable[T]]) -> Awaitable[T]:
        return executor.retry(operation)

    return wrapper


async def retry_linear(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay: float = 1.0,
) -> T:
    """Retry with a constant delay between attempts."""
    config = RetryConfig(
        max_attempts=max_attempts,
        initial_delay=delay,
        max_delay=delay,
        backoff_factor=1.0,
        jitter=False,
    )
    return await retry(operation, config)
