"""
QuoteApplication - builds the resilience stack from Settings and owns its lifecycle.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from quoteguard.datasource.base import SearchProvider
from quoteguard.datasource.serper import SerperSource
from quoteguard.scheduler import MaintenanceScheduler
from quoteguard.services.cache import QuoteCache
from quoteguard.services.circuit_breaker import CircuitBreaker
from quoteguard.services.client import ResilientQuoteClient
from quoteguard.services.health import HealthCheckRegistry
from quoteguard.services.retry import RetryExecutor
from quoteguard.settings import Settings


class QuoteApplication:
    """
    Wires cache, breaker, retry, provider, client, health registry and
    scheduler together. Nothing here is a module-level singleton.

    Usage:
        application = QuoteApplication(load_settings())
        await application.start()
        ...
        await application.stop()
    """

    def __init__(
        self,
        settings: Settings,
        provider: SearchProvider | None = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self.settings = settings

        if provider is None:
            provider = SerperSource(
                api_key=settings.serper_api_key,
                base_url=settings.serper_base_url,
                timeout=settings.search_timeout,
            )
        self.provider = provider
        self.cache = QuoteCache(
            max_size=settings.cache_max_size,
            default_ttl=settings.cache_ttl,
            clock=clock,
        )
        self.circuit_breaker = CircuitBreaker(
            self.provider.service_id,
            settings.circuit_breaker_config(),
            clock=clock,
        )
        self.client = ResilientQuoteClient(
            self.provider,
            cache=self.cache,
            circuit_breaker=self.circuit_breaker,
            retry_executor=(
                RetryExecutor(settings.retry_config())
                if sleep is None
                else RetryExecutor(settings.retry_config(), sleep=sleep)
            ),
            search_timeout=settings.search_timeout,
        )

        scheduler = AsyncIOScheduler()
        self.health_registry = HealthCheckRegistry(
            interval=settings.health_check_interval,
            timeout=settings.health_check_timeout_seconds,
            scheduler=scheduler,
        )
        self.client.register_health_checks(self.health_registry)

        self.scheduler = MaintenanceScheduler(
            self.cache,
            health_registry=self.health_registry,
            cleanup_interval=settings.cache_cleanup_interval,
            scheduler=scheduler,
        )

    async def start(self) -> None:
        """Start background jobs."""
        if not self.provider.is_configured():
            logger.warning(
                f"Search provider '{self.provider.service_id}' is not configured; "
                "only cached quotes can be served"
            )
        self.scheduler.start()
        logger.info("Quote application started")

    async def stop(self) -> None:
        """Stop background jobs and release network resources."""
        if self.scheduler.is_running():
            self.scheduler.stop()
        await self.client.close()
        logger.info("Quote application stopped")
