"""Tests for the health check registry and built-in checks."""

import asyncio
from datetime import timedelta

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from quoteguard.services.cache import Cache
from quoteguard.services.circuit_breaker import CircuitBreaker
from quoteguard.services.health import (
    HEALTH_JOB_ID,
    ComponentHealth,
    HealthCheckRegistry,
    HealthStatus,
    aggregate_status,
    create_cache_health_check,
    create_circuit_breaker_health_check,
    create_search_health_check,
)


def fixed_check(status: HealthStatus, message: str = ""):
    async def check() -> ComponentHealth:
        return ComponentHealth(name="ignored", status=status, message=message)

    return check


class TestAggregation:
    """Test overall status derivation."""

    def test_empty_is_healthy(self):
        assert aggregate_status([]) == HealthStatus.HEALTHY

    def test_worst_component_wins(self):
        components = [
            ComponentHealth(name="a", status=HealthStatus.HEALTHY),
            ComponentHealth(name="b", status=HealthStatus.DEGRADED),
        ]
        assert aggregate_status(components) == HealthStatus.DEGRADED

        components.append(ComponentHealth(name="c", status=HealthStatus.UNHEALTHY))
        assert aggregate_status(components) == HealthStatus.UNHEALTHY


class TestHealthCheckRegistry:
    """Test running checks."""

    @pytest.mark.asyncio
    async def test_run_checks_aggregates(self):
        registry = HealthCheckRegistry()
        registry.register("cache", fixed_check(HealthStatus.HEALTHY))
        registry.register("search", fixed_check(HealthStatus.DEGRADED))

        health = await registry.run_checks()

        assert health.status == HealthStatus.DEGRADED
        assert sorted(c.name for c in health.components) == ["cache", "search"]
        assert all(c.response_time_ms is not None for c in health.components)
        assert health.uptime >= 0

    @pytest.mark.asyncio
    async def test_raising_check_is_unhealthy(self):
        async def broken() -> ComponentHealth:
            raise RuntimeError("database exploded")

        registry = HealthCheckRegistry()
        registry.register("broken", broken)
        registry.register("fine", fixed_check(HealthStatus.HEALTHY))

        health = await registry.run_checks()

        assert health.status == HealthStatus.UNHEALTHY
        broken_result = next(c for c in health.components if c.name == "broken")
        assert "database exploded" in broken_result.message

    @pytest.mark.asyncio
    async def test_slow_check_times_out(self):
        async def slow() -> ComponentHealth:
            await asyncio.sleep(5)
            return ComponentHealth(name="slow", status=HealthStatus.HEALTHY)

        registry = HealthCheckRegistry(timeout=0.01)
        registry.register("slow", slow)

        health = await registry.run_checks()

        assert health.status == HealthStatus.UNHEALTHY
        assert "timed out" in health.components[0].message

    @pytest.mark.asyncio
    async def test_last_results(self):
        registry = HealthCheckRegistry()
        registry.register("cache", fixed_check(HealthStatus.HEALTHY))

        assert registry.get_last_results().components == []

        await registry.run_checks()
        last = registry.get_last_results()
        assert [c.name for c in last.components] == ["cache"]

    @pytest.mark.asyncio
    async def test_unregister_drops_check_and_result(self):
        registry = HealthCheckRegistry()
        registry.register("cache", fixed_check(HealthStatus.UNHEALTHY))
        await registry.run_checks()

        assert registry.unregister("cache") is True
        assert registry.unregister("cache") is False
        assert registry.names() == []
        assert registry.get_last_results().status == HealthStatus.HEALTHY


class TestPeriodicChecks:
    """Test scheduled execution."""

    @pytest.mark.asyncio
    async def test_start_runs_checks_and_stop_is_idempotent(self):
        registry = HealthCheckRegistry(interval=timedelta(seconds=60))
        registry.register("cache", fixed_check(HealthStatus.HEALTHY))

        registry.start_periodic_checks()
        registry.start_periodic_checks()
        assert registry.is_running

        for _ in range(100):
            if registry.get_last_results().components:
                break
            await asyncio.sleep(0.01)
        assert [c.name for c in registry.get_last_results().components] == ["cache"]

        registry.stop_periodic_checks()
        registry.stop_periodic_checks()
        assert not registry.is_running

    @pytest.mark.asyncio
    async def test_shared_scheduler_is_left_running(self):
        scheduler = AsyncIOScheduler()
        scheduler.start()
        registry = HealthCheckRegistry(scheduler=scheduler)

        registry.start_periodic_checks()
        assert scheduler.get_job(HEALTH_JOB_ID) is not None

        registry.stop_periodic_checks()
        assert scheduler.get_job(HEALTH_JOB_ID) is None
        assert scheduler.running

        scheduler.shutdown(wait=False)


class TestBuiltInChecks:
    """Test cache, breaker and search checks."""

    @pytest.mark.asyncio
    async def test_cache_check_healthy(self):
        cache: Cache[str] = Cache(max_size=10)
        cache.set("a", "1")
        cache.get("a")

        result = await create_cache_health_check(cache)()

        assert result.status == HealthStatus.HEALTHY
        assert result.details["size"] == 1

    @pytest.mark.asyncio
    async def test_cache_check_degraded_on_low_hit_rate(self):
        cache: Cache[str] = Cache(max_size=10)
        for i in range(101):
            cache.get(f"missing-{i}")

        result = await create_cache_health_check(cache)()

        assert result.status == HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_breaker_check_maps_states(self, clock):
        breaker = CircuitBreaker("search", clock=clock)
        check = create_circuit_breaker_health_check(breaker)

        assert (await check()).status == HealthStatus.HEALTHY

        breaker.record_failure()
        assert (await check()).status == HealthStatus.DEGRADED

        breaker.force_open()
        result = await check()
        assert result.status == HealthStatus.UNHEALTHY
        assert result.name == "circuit-breaker-search"

        clock.advance(60)
        assert (await check()).status == HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_search_check(self):
        async def ok():
            return None

        async def down():
            raise ConnectionError("refused")

        healthy = await create_search_health_check(ok)()
        unhealthy = await create_search_health_check(down, name="serper-api")()

        assert healthy.status == HealthStatus.HEALTHY
        assert unhealthy.status == HealthStatus.UNHEALTHY
        assert unhealthy.name == "serper-api"
        assert unhealthy.details["error"] == "ConnectionError"
