"""Tests for application wiring."""

import pytest

from quoteguard.app import QuoteApplication
from quoteguard.datasource.serper import SerperSource
from quoteguard.settings import Settings
from tests.conftest import FakeSearchProvider, RecordingSleep, make_results


class TestQuoteApplication:
    """Test component construction and lifecycle."""

    def test_builds_components_from_settings(self):
        settings = Settings(
            SERPER_API_KEY="key",
            CACHE_MAX_SIZE=20,
            BREAKER_FAILURE_THRESHOLD=4,
            RETRY_MAX_ATTEMPTS=2,
        )

        application = QuoteApplication(settings)

        assert isinstance(application.provider, SerperSource)
        assert application.cache.max_size == 20
        assert application.circuit_breaker.config.failure_threshold == 4
        assert application.client.circuit_breaker is application.circuit_breaker
        assert "serper-api" in application.health_registry.names()

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        provider = FakeSearchProvider(configured=False)
        application = QuoteApplication(Settings(), provider=provider)

        await application.start()
        assert application.scheduler.is_running()
        assert application.health_registry.is_running

        await application.stop()
        assert not application.scheduler.is_running()
        assert provider.closed is True

    def test_client_reads_the_application_cache(self):
        """Test an empty cache is still the one handed to the client."""
        application = QuoteApplication(
            Settings(), provider=FakeSearchProvider(configured=False)
        )

        assert len(application.cache) == 0
        assert application.client.cache is application.cache

    @pytest.mark.asyncio
    async def test_cleanup_job_sweeps_the_client_cache(self, clock):
        provider = FakeSearchProvider(
            default=make_results("Imagination is more important than knowledge.")
        )
        application = QuoteApplication(
            Settings(CACHE_TTL=10),
            provider=provider,
            clock=clock,
            sleep=RecordingSleep(),
        )

        response = await application.client.fetch("Einstein", count=1)
        assert len(response.quotes) == 1
        assert application.client.cache.keys() == ["einstein:1"]

        clock.advance(11)
        assert application.scheduler.cleanup_job() == 1
        assert application.client.cache.keys() == []
