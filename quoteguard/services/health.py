"""
HealthCheckRegistry - Runs named async checks and aggregates system health.

Checks run concurrently, each bounded by its own timeout. A check that
raises or times out is reported as UNHEALTHY; it never fails the run.
"""

import asyncio
import time
from datetime import datetime, timedelta
from enum import Enum
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Awaitable, Callable

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from pydantic import BaseModel, Field

from quoteguard.services.cache import Cache
from quoteguard.services.circuit_breaker import CircuitBreaker, CircuitState

HEALTH_JOB_ID = "health_checks"


class HealthStatus(str, Enum):
    """Health status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health of a single component."""

    name: str
    status: HealthStatus
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    last_checked_at: datetime = Field(default_factory=datetime.now)
    response_time_ms: float | None = None


class SystemHealth(BaseModel):
    """Aggregated health of every registered component."""

    status: HealthStatus
    timestamp: datetime = Field(default_factory=datetime.now)
    components: list[ComponentHealth] = Field(default_factory=list)
    uptime: float = 0.0  # seconds
    version: str = "unknown"


HealthCheckFn = Callable[[], Awaitable[ComponentHealth]]


def aggregate_status(components: list[ComponentHealth]) -> HealthStatus:
    """UNHEALTHY if any component is, else DEGRADED if any is, else HEALTHY."""
    statuses = {c.status for c in components}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def _package_version() -> str:
    try:
        return version("quoteguard")
    except PackageNotFoundError:
        return "unknown"


class HealthCheckRegistry:
    """
    Registry of health checks.

    Usage:
        registry = HealthCheckRegistry(timeout=5.0)
        registry.register("quote-cache", create_cache_health_check(cache))

        health = await registry.run_checks()
        registry.start_periodic_checks()
    """

    def __init__(
        self,
        interval: timedelta = timedelta(seconds=60),
        timeout: float = 10.0,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.interval = interval
        self.timeout = timeout
        self._checks: dict[str, HealthCheckFn] = {}
        self._last_results: dict[str, ComponentHealth] = {}
        self._started_at = time.monotonic()
        self._version = _package_version()

        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._job: Job | None = None

    def register(self, name: str, check: HealthCheckFn) -> None:
        """Register a health check, replacing any check with the same name."""
        self._checks[name] = check
        logger.info(f"Health check registered: {name}")

    def unregister(self, name: str) -> bool:
        """Remove a check and its last result."""
        self._last_results.pop(name, None)
        return self._checks.pop(name, None) is not None

    def names(self) -> list[str]:
        return list(self._checks)

    async def run_checks(self) -> SystemHealth:
        """Run all checks concurrently and store the results as last results."""
        checks = list(self._checks.items())
        components = await asyncio.gather(
            *(self._run_check(name, check) for name, check in checks)
        )

        for component in components:
            # Skip checks unregistered while the run was in flight
            if component.name in self._checks:
                self._last_results[component.name] = component

        return self._build(list(components))

    def get_last_results(self) -> SystemHealth:
        """Most recent result per check, without running anything."""
        return self._build(list(self._last_results.values()))

    @property
    def is_running(self) -> bool:
        return self._job is not None

    def start_periodic_checks(self) -> None:
        """
        Run checks now and then every `interval`.

        Must be called with a running event loop. Calling it again while
        already running does nothing.
        """
        if self._job is not None:
            logger.warning("Periodic health checks are already running")
            return

        scheduler = self._ensure_scheduler()
        self._job = scheduler.add_job(
            self._periodic_run,
            trigger="interval",
            seconds=self.interval.total_seconds(),
            id=HEALTH_JOB_ID,
            name="Health Checks",
            next_run_time=datetime.now(),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if not scheduler.running:
            scheduler.start()

        logger.info(
            f"Periodic health checks started: every {self.interval.total_seconds()}s"
        )

    def stop_periodic_checks(self) -> None:
        """Stop the periodic job. Safe to call when not running."""
        if self._job is None:
            return

        job, self._job = self._job, None
        scheduler = self._scheduler
        if scheduler is not None:
            if scheduler.get_job(job.id) is not None:
                scheduler.remove_job(job.id)
            if self._owns_scheduler:
                if scheduler.running:
                    scheduler.shutdown(wait=False)
                self._scheduler = None

        logger.info("Periodic health checks stopped")

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
            self._owns_scheduler = True
        return self._scheduler

    async def _periodic_run(self) -> None:
        health = await self.run_checks()
        if health.status != HealthStatus.HEALTHY:
            unhealthy = [
                c.name for c in health.components if c.status != HealthStatus.HEALTHY
            ]
            logger.warning(f"System health is {health.status.value}: {unhealthy}")

    async def _run_check(self, name: str, check: HealthCheckFn) -> ComponentHealth:
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(check(), timeout=self.timeout)
        except asyncio.TimeoutError:
            message = f"Health check '{name}' timed out after {self.timeout}s"
            logger.warning(message)
            result = ComponentHealth(
                name=name, status=HealthStatus.UNHEALTHY, message=message
            )
        except Exception as e:
            logger.error(f"Health check '{name}' failed: {e}")
            result = ComponentHealth(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message=str(e) or "Health check failed",
            )

        elapsed_ms = (time.monotonic() - started) * 1000
        return result.model_copy(
            update={
                "name": name,
                "last_checked_at": datetime.now(),
                "response_time_ms": round(elapsed_ms, 2),
            }
        )

    def _build(self, components: list[ComponentHealth]) -> SystemHealth:
        return SystemHealth(
            status=aggregate_status(components),
            components=components,
            uptime=round(time.monotonic() - self._started_at, 3),
            version=self._version,
        )


# Built-in checks


def create_cache_health_check(cache: Cache[Any]) -> HealthCheckFn:
    """Check reporting cache hit rate and pressure."""

    async def check() -> ComponentHealth:
        stats = cache.get_stats()
        lookups = stats.hits + stats.misses

        if stats.hit_rate < 0.1 and lookups > 100:
            status = HealthStatus.DEGRADED
            message = "Cache hit rate is very low"
        elif stats.size >= stats.max_size * 0.9 and stats.evictions > 100:
            status = HealthStatus.DEGRADED
            message = "Cache is near capacity with high eviction rate"
        else:
            status = HealthStatus.HEALTHY
            message = "Cache is operating normally"

        return ComponentHealth(
            name="cache", status=status, message=message, details=stats.to_dict()
        )

    return check


def create_circuit_breaker_health_check(breaker: CircuitBreaker) -> HealthCheckFn:
    """Check mapping breaker state to a health status."""

    async def check() -> ComponentHealth:
        stats = breaker.get_stats()

        if stats.state == CircuitState.OPEN:
            status = HealthStatus.UNHEALTHY
            message = "Circuit breaker is open"
        elif stats.state == CircuitState.HALF_OPEN:
            status = HealthStatus.DEGRADED
            message = "Circuit breaker is half-open (testing recovery)"
        elif stats.consecutive_failures > 0:
            status = HealthStatus.DEGRADED
            message = (
                f"Circuit breaker has {stats.consecutive_failures} recent failures"
            )
        else:
            status = HealthStatus.HEALTHY
            message = "Circuit breaker is functioning normally"

        return ComponentHealth(
            name=f"circuit-breaker-{breaker.service_id}",
            status=status,
            message=message,
            details=stats.to_dict(),
        )

    return check


def create_search_health_check(
    ping: Callable[[], Awaitable[Any]],
    name: str = "search-api",
) -> HealthCheckFn:
    """
    Check that calls the search provider directly.

    `ping` should issue the cheapest possible real request; it bypasses the
    breaker so an open circuit cannot hide a recovered upstream.
    """

    async def check() -> ComponentHealth:
        started = time.monotonic()
        try:
            await ping()
        except Exception as e:
            return ComponentHealth(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message=str(e) or "Search API health check failed",
                details={"error": type(e).__name__},
            )

        elapsed_ms = round((time.monotonic() - started) * 1000, 2)
        return ComponentHealth(
            name=name,
            status=HealthStatus.HEALTHY,
            message="Search API is responding normally",
            details={"response_time_ms": elapsed_ms},
        )

    return check
