"""
CircuitBreaker - Prevents cascading failures by stopping requests to failing services.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is failing, requests are blocked
- HALF_OPEN: Testing if service has recovered

Transitions:
- CLOSED → OPEN: When failure_threshold consecutive failures are reached
- OPEN → HALF_OPEN: After open_timeout expires (on the next read/call)
- HALF_OPEN → CLOSED: After success_threshold consecutive successes
- HALF_OPEN → OPEN: On any failed request
"""

import inspect
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from quoteguard.services.errors import CircuitOpenError

T = TypeVar("T")

StateListener = Callable[["CircuitState", "CircuitState"], None]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Consecutive failures before opening
    success_threshold: int = 2  # Successes needed to close from half-open
    open_timeout: timedelta = timedelta(seconds=60)  # Time before half-open
    half_open_max_calls: int = 1  # Concurrent trial calls in half-open
    fallback: Callable[[], Any] | None = None  # Served while open, may be async
    health_check: Callable[[], Awaitable[bool]] | None = None  # Gate for trials


@dataclass
class CircuitBreakerStats:
    """Snapshot of breaker state and counters."""

    state: CircuitState
    consecutive_failures: int
    consecutive_successes: int
    last_failure_at: datetime | None
    last_success_at: datetime | None
    last_state_change_at: datetime
    total_requests: int
    rejected_requests: int
    fallbacks_executed: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["state"] = self.state.value
        for field_name in ("last_failure_at", "last_success_at", "last_state_change_at"):
            value = data[field_name]
            data[field_name] = value.isoformat() if value else None
        return data


class CircuitBreaker:
    """
    Circuit breaker protecting one external operation.

    Usage:
        breaker = CircuitBreaker("serper")

        results = await breaker.execute(lambda: provider.search(query, 10))
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.service_id = service_id
        self.config = config if config is not None else CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: datetime | None = None
        self._last_success_time: datetime | None = None
        self._state_changed_at = clock()
        self._half_open_calls = 0
        self._pending_health_check = False
        self._total_requests = 0
        self._rejected_requests = 0
        self._fallbacks_executed = 0
        self._listeners: list[StateListener] = []
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Get current state, checking for automatic transitions."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._open_timeout_elapsed():
                self._transition(CircuitState.HALF_OPEN)
            return self._state

    @property
    def is_open(self) -> bool:
        """True while calls are being rejected without a trial."""
        return self.state == CircuitState.OPEN

    def get_state(self) -> CircuitState:
        return self.state

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run operation under breaker protection.

        Raises:
            CircuitOpenError: If the breaker is open and no fallback is configured
        """
        with self._lock:
            self._total_requests += 1
        state = self.state

        if state == CircuitState.OPEN:
            return await self.reject()

        if state == CircuitState.HALF_OPEN:
            if self._pending_health_check and not await self._run_health_check():
                return await self.reject()
            with self._lock:
                admitted = self._half_open_calls < self.config.half_open_max_calls
                if admitted:
                    self._half_open_calls += 1
            if not admitted:
                logger.debug(
                    f"Circuit breaker '{self.service_id}' trial slots busy, rejecting"
                )
                return await self.reject()

        try:
            result = await operation()
        except Exception as e:
            self.record_failure(e)
            raise
        else:
            self.record_success()
            return result
        finally:
            if state == CircuitState.HALF_OPEN:
                with self._lock:
                    self._half_open_calls = max(0, self._half_open_calls - 1)

    async def reject(self) -> Any:
        """Serve a blocked call: the fallback result or a CircuitOpenError."""
        with self._lock:
            self._rejected_requests += 1
        return await self._serve_fallback()

    def record_success(self) -> None:
        """Record a successful request."""
        with self._lock:
            self._last_success_time = self._clock()
            self._failure_count = 0
            self._success_count += 1

            if (
                self._state == CircuitState.HALF_OPEN
                and self._success_count >= self.config.success_threshold
            ):
                self._transition(CircuitState.CLOSED)

    def record_failure(self, error: BaseException | None = None) -> None:
        """Record a failed request."""
        with self._lock:
            self._failure_count += 1
            self._success_count = 0
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                # Any failure in half-open reopens the circuit
                self._transition(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

        if error is not None:
            logger.debug(
                f"Circuit breaker '{self.service_id}' failure "
                f"{self._failure_count}: {error}"
            )

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        with self._lock:
            previous = self._state
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_time = None
            self._last_success_time = None
            self._state_changed_at = self._clock()
            self._half_open_calls = 0
            self._pending_health_check = False
            self._total_requests = 0
            self._rejected_requests = 0
            self._fallbacks_executed = 0
        logger.info(f"Circuit breaker '{self.service_id}' manually reset")
        if previous != CircuitState.CLOSED:
            self._notify(previous, CircuitState.CLOSED)

    def force_open(self) -> None:
        """Open the circuit for maintenance."""
        with self._lock:
            self._transition(CircuitState.OPEN)

    def force_close(self) -> None:
        """Close the circuit without waiting for successful trials."""
        with self._lock:
            self._transition(CircuitState.CLOSED)

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked as listener(old_state, new_state)."""
        self._listeners.append(listener)

    def time_until_reset(self) -> float | None:
        """Get seconds until circuit transitions to half-open."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return None
            reset_at = self._state_changed_at + self.config.open_timeout
            return max(0.0, (reset_at - self._clock()).total_seconds())

    def get_stats(self) -> CircuitBreakerStats:
        """Get current state and counters."""
        state = self.state
        with self._lock:
            return CircuitBreakerStats(
                state=state,
                consecutive_failures=self._failure_count,
                consecutive_successes=self._success_count,
                last_failure_at=self._last_failure_time,
                last_success_at=self._last_success_time,
                last_state_change_at=self._state_changed_at,
                total_requests=self._total_requests,
                rejected_requests=self._rejected_requests,
                fallbacks_executed=self._fallbacks_executed,
            )

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        status = self.get_stats().to_dict()
        status["service_id"] = self.service_id
        status["time_until_reset"] = self.time_until_reset()
        return status

    def _open_timeout_elapsed(self) -> bool:
        return self._clock() - self._state_changed_at >= self.config.open_timeout

    def _transition(self, new_state: CircuitState) -> None:
        """Move to new_state. Caller holds the lock."""
        old_state = self._state
        self._state = new_state
        self._state_changed_at = self._clock()

        if new_state == CircuitState.OPEN:
            self._pending_health_check = False
            logger.warning(
                f"Circuit breaker '{self.service_id}' OPENED after "
                f"{self._failure_count} failures"
            )
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            self._half_open_calls = 0
            self._pending_health_check = self.config.health_check is not None
            logger.info(f"Circuit breaker '{self.service_id}' transitioned to HALF_OPEN")
        else:
            self._failure_count = 0
            self._success_count = 0
            self._half_open_calls = 0
            self._pending_health_check = False
            logger.info(f"Circuit breaker '{self.service_id}' CLOSED (recovered)")

        if old_state != new_state:
            self._notify(old_state, new_state)

    def _notify(self, old_state: CircuitState, new_state: CircuitState) -> None:
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(
                    f"Circuit breaker '{self.service_id}' state listener failed: {e}"
                )

    async def _run_health_check(self) -> bool:
        """Gate the first half-open trial on the configured health check."""
        with self._lock:
            if not self._pending_health_check:
                return True
            self._pending_health_check = False

        check = self.config.health_check
        try:
            healthy = bool(await check()) if check else True
        except Exception as e:
            logger.error(f"Circuit breaker '{self.service_id}' health check failed: {e}")
            healthy = False

        if not healthy:
            with self._lock:
                self._transition(CircuitState.OPEN)
        return healthy

    async def _serve_fallback(self) -> Any:
        fallback = self.config.fallback
        if fallback is None:
            raise CircuitOpenError(
                self.service_id,
                self.state.value,
                self.time_until_reset() or 0.0,
            )

        with self._lock:
            self._fallbacks_executed += 1
        logger.warning(f"Circuit breaker '{self.service_id}' open, using fallback")
        result = fallback()
        if inspect.isawaitable(result):
            result = await result
        return result
