"""
Base search provider interface.
"""

from abc import ABC, abstractmethod

from quoteguard.models import SearchResult


class SearchProvider(ABC):
    """
    Abstract base class for the external search operation.

    All providers should:
    - Return SearchResult models in ranking order
    - Raise quoteguard.services.errors.ServiceError subclasses, so failures
      arrive at the retry layer already classified
    - Leave retries, caching and circuit breaking to ResilientQuoteClient
    """

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Unique identifier for this provider."""
        ...

    @abstractmethod
    async def search(self, query: str, result_count: int = 10) -> list[SearchResult]:
        """Run one search."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the provider is properly configured."""
        ...

    def build_query(self, person: str, topic: str | None = None) -> str:
        """Build a targeted search query for finding quotes."""
        query = f'"{person}" quotes'
        if topic:
            query += f' about "{topic}"'
        return query

    async def ping(self) -> None:
        """Cheapest real request, used by health checks."""
        await self.search("test", 1)

    async def close(self) -> None:
        """Release network resources."""
        return None
