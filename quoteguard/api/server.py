"""FastAPI server exposing quotes and system health."""

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from loguru import logger

from quoteguard.exceptions import to_http_exception
from quoteguard.models import QuoteResponse
from quoteguard.services.client import ResilientQuoteClient
from quoteguard.services.errors import ServiceError
from quoteguard.services.health import HealthCheckRegistry, HealthStatus


class QuoteServer:
    """HTTP server for quote lookups and health reporting."""

    def __init__(
        self,
        client: ResilientQuoteClient,
        health_registry: HealthCheckRegistry,
    ):
        self.client = client
        self.health_registry = health_registry
        self.app = FastAPI(title="QuoteGuard")

        # Register routes
        self.app.get("/quotes", response_model=QuoteResponse)(self.get_quotes)
        self.app.get("/health")(self.health_check)
        self.app.get("/health/last")(self.last_health)
        self.app.post("/admin/reset")(self.reset)

    async def get_quotes(
        self,
        person: str,
        count: int = 5,
        topic: str | None = None,
    ) -> QuoteResponse:
        """Fetch quotes for a person.

        Args:
            person: Person to find quotes by
            count: Number of quotes, 1 to 10
            topic: Optional topic to narrow the search

        Returns:
            Quotes plus cache/fallback metadata
        """
        try:
            return await self.client.fetch(person, topic=topic, count=count)
        except ServiceError as e:
            logger.warning(f"Quote request for '{person}' failed: {e}")
            raise to_http_exception(e) from e

    async def health_check(self) -> JSONResponse:
        """Run every health check now. Responds 503 when the system is unhealthy."""
        health = await self.health_registry.run_checks()
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if health.status == HealthStatus.UNHEALTHY
            else status.HTTP_200_OK
        )
        return JSONResponse(status_code=code, content=health.model_dump(mode="json"))

    async def last_health(self):
        """Most recent check results, without running anything."""
        return self.health_registry.get_last_results().model_dump(mode="json")

    async def reset(self):
        """Reset the circuit breaker and clear the quote cache."""
        self.client.reset()
        return {"status": "ok", "client": self.client.get_health_status()}


def create_app(
    client: ResilientQuoteClient,
    health_registry: HealthCheckRegistry,
) -> FastAPI:
    """Create FastAPI app for the quote service.

    Args:
        client: Client serving quote requests
        health_registry: Registry with the checks to expose

    Returns:
        FastAPI app
    """
    server = QuoteServer(client, health_registry)
    return server.app
