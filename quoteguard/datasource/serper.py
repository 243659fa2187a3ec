"""
Serper.dev search provider.

API Documentation: https://serper.dev
Requires an API key passed in the X-API-KEY header.
"""

from typing import Any

import httpx
from loguru import logger

from quoteguard.datasource.base import SearchProvider
from quoteguard.models import SearchResult
from quoteguard.services.errors import (
    AuthenticationError,
    ErrorKind,
    RateLimitError,
    RequestTimeoutError,
    ResourceNotFoundError,
    ServiceError,
    TransientAPIError,
)


class SerperSource(SearchProvider):
    """
    Serper.dev Google search API.

    Every httpx failure is translated into the service error taxonomy here,
    so nothing above this layer needs to know about httpx.
    """

    BASE_URL = "https://google.serper.dev"
    SERVICE_ID = "serper"

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._http_client

    async def search(self, query: str, result_count: int = 10) -> list[SearchResult]:
        """
        Search Serper for a query.

        Raises:
            AuthenticationError: On 401/403
            RateLimitError: On 429
            RequestTimeoutError: On client timeout or 408
            TransientAPIError: On 5xx or transport failures
            ServiceError: For any other upstream error
        """
        client = await self._get_http_client()

        try:
            response = await client.post(
                f"{self.base_url}/search",
                json={"q": query, "num": result_count},
                headers={
                    "X-API-KEY": self.api_key,
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload: dict[str, Any] = response.json()

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.SERVICE_ID, self.timeout) from e

        except httpx.HTTPStatusError as e:
            raise self._status_error(e.response) from e

        except httpx.TransportError as e:
            raise TransientAPIError(
                f"Network error connecting to Serper API: {e}",
                service_id=self.SERVICE_ID,
                kind=ErrorKind.CONNECTION,
            ) from e

        except ValueError as e:
            raise ServiceError(
                f"Serper API returned invalid JSON: {e}",
                service_id=self.SERVICE_ID,
            ) from e

        if payload.get("error"):
            raise ServiceError(
                f"Serper API error: {payload['error']}",
                service_id=self.SERVICE_ID,
                details={"error": payload["error"]},
            )

        results = [
            SearchResult(
                snippet=item.get("snippet") or "",
                link=item.get("link"),
                title=item.get("title"),
            )
            for item in payload.get("organic") or []
        ]
        logger.debug(f"Serper search '{query}' returned {len(results)} results")
        return results

    def _status_error(self, response: httpx.Response) -> ServiceError:
        status = response.status_code
        details = {"body": response.text[:200]}

        if status in (401, 403):
            return AuthenticationError(
                "Invalid Serper API key",
                service_id=self.SERVICE_ID,
                status=status,
            )
        if status == 404:
            return ResourceNotFoundError(
                "Serper API endpoint not found",
                service_id=self.SERVICE_ID,
                status=status,
            )
        if status == 429:
            return RateLimitError(
                self.SERVICE_ID,
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
            )
        if status == 408:
            error = RequestTimeoutError(self.SERVICE_ID, self.timeout)
            error.status = status
            return error
        if status >= 500:
            return TransientAPIError(
                f"Serper API error: HTTP {status}",
                service_id=self.SERVICE_ID,
                status=status,
                details=details,
            )
        return ServiceError(
            f"Serper API error: HTTP {status}",
            service_id=self.SERVICE_ID,
            status=status,
            details=details,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
