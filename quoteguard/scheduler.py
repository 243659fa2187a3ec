"""
Maintenance scheduler.

One APScheduler AsyncIOScheduler drives the periodic cache sweep and,
shared with the HealthCheckRegistry, the periodic health checks.
"""

from datetime import timedelta
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from quoteguard.services.cache import Cache
from quoteguard.services.health import HealthCheckRegistry

CLEANUP_JOB_ID = "cache_cleanup"


class MaintenanceScheduler:
    """Background jobs for the quote service."""

    def __init__(
        self,
        cache: Cache[Any],
        health_registry: HealthCheckRegistry | None = None,
        cleanup_interval: timedelta = timedelta(seconds=60),
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.scheduler = scheduler if scheduler is not None else AsyncIOScheduler()
        self.cache = cache
        self.health_registry = health_registry
        self.cleanup_interval = cleanup_interval
        self._is_running = False

    def cleanup_job(self) -> int:
        """Sweep expired cache entries."""
        try:
            removed = self.cache.cleanup()
        except Exception as e:
            logger.error(f"Error in scheduled cache cleanup: {e}")
            return 0

        if removed:
            logger.info(f"Scheduled cache cleanup removed {removed} expired entries")
        return removed

    def start(self) -> None:
        """Start the scheduler. Must be called with a running event loop."""
        if self._is_running:
            logger.warning("Maintenance scheduler is already running")
            return

        self.scheduler.add_job(
            self.cleanup_job,
            trigger="interval",
            seconds=self.cleanup_interval.total_seconds(),
            id=CLEANUP_JOB_ID,
            name="Cache Cleanup",
            replace_existing=True,
        )
        self.scheduler.start()

        if self.health_registry is not None:
            self.health_registry.start_periodic_checks()

        self._is_running = True
        logger.info(
            f"Maintenance scheduler started: cache cleanup every "
            f"{self.cleanup_interval.total_seconds()}s"
        )

    def stop(self) -> None:
        """Stop the scheduler and every job on it."""
        if not self._is_running:
            logger.warning("Maintenance scheduler is not running")
            return

        if self.health_registry is not None:
            self.health_registry.stop_periodic_checks()

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Maintenance scheduler stopped")

    def is_running(self) -> bool:
        """Check whether the scheduler is running."""
        return self._is_running
