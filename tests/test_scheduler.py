"""Tests for the maintenance scheduler."""

from datetime import timedelta

import pytest

from quoteguard.scheduler import CLEANUP_JOB_ID, MaintenanceScheduler
from quoteguard.services.cache import Cache
from quoteguard.services.health import HEALTH_JOB_ID, HealthCheckRegistry


class TestMaintenanceScheduler:
    """Test job registration and lifecycle."""

    def test_cleanup_job_sweeps_expired_entries(self, clock):
        cache: Cache[str] = Cache(default_ttl=timedelta(seconds=10), clock=clock)
        cache.set("old", "1")
        clock.advance(11)
        cache.set("new", "2")

        scheduler = MaintenanceScheduler(cache)

        assert scheduler.cleanup_job() == 1
        assert cache.keys() == ["new"]

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self, clock):
        cache: Cache[str] = Cache(clock=clock)
        scheduler = MaintenanceScheduler(cache, cleanup_interval=timedelta(seconds=5))

        scheduler.start()
        scheduler.start()
        assert scheduler.is_running()
        assert scheduler.scheduler.get_job(CLEANUP_JOB_ID) is not None

        scheduler.stop()
        scheduler.stop()
        assert not scheduler.is_running()

    @pytest.mark.asyncio
    async def test_shares_scheduler_with_health_registry(self, clock):
        cache: Cache[str] = Cache(clock=clock)
        scheduler = MaintenanceScheduler(cache)
        registry = HealthCheckRegistry(scheduler=scheduler.scheduler)
        scheduler.health_registry = registry

        scheduler.start()
        assert registry.is_running
        assert scheduler.scheduler.get_job(HEALTH_JOB_ID) is not None

        scheduler.stop()
        assert not registry.is_running
