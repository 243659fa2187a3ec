"""Tests for the Serper search provider."""

import json

import httpx
import pytest

from quoteguard.datasource.serper import SerperSource
from quoteguard.services.errors import (
    AuthenticationError,
    ErrorKind,
    RateLimitError,
    RequestTimeoutError,
    ResourceNotFoundError,
    ServiceError,
    TransientAPIError,
)


def make_source(handler) -> SerperSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SerperSource(api_key="test-key", http_client=client)


class TestSerperSearch:
    """Test successful searches."""

    @pytest.mark.asyncio
    async def test_sends_query_and_parses_results(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["api_key"] = request.headers["X-API-KEY"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "organic": [
                        {
                            "title": "Einstein quotes",
                            "link": "https://example.com/einstein",
                            "snippet": '"Imagination is more important than knowledge."',
                        },
                        {"title": "No snippet"},
                    ]
                },
            )

        source = make_source(handler)
        results = await source.search('"Einstein" quotes', 5)

        assert seen["url"] == "https://google.serper.dev/search"
        assert seen["api_key"] == "test-key"
        assert seen["body"] == {"q": '"Einstein" quotes', "num": 5}
        assert len(results) == 2
        assert results[0].link == "https://example.com/einstein"
        assert results[1].snippet == ""

    @pytest.mark.asyncio
    async def test_missing_organic_is_empty(self):
        source = make_source(lambda request: httpx.Response(200, json={}))

        assert await source.search("anything") == []

    def test_build_query(self):
        source = SerperSource(api_key="")

        assert source.build_query("Einstein") == '"Einstein" quotes'
        assert (
            source.build_query("Einstein", "science")
            == '"Einstein" quotes about "science"'
        )
        assert source.is_configured() is False

    @pytest.mark.asyncio
    async def test_close_releases_client(self):
        source = make_source(lambda request: httpx.Response(200, json={}))
        await source.search("warmup")

        await source.close()

        assert source._http_client is None


class TestSerperErrors:
    """Test mapping of HTTP failures to service errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, error_type, kind",
        [
            (401, AuthenticationError, ErrorKind.UNAUTHORIZED),
            (403, AuthenticationError, ErrorKind.UNAUTHORIZED),
            (404, ResourceNotFoundError, ErrorKind.NOT_FOUND),
            (408, RequestTimeoutError, ErrorKind.TIMEOUT),
            (500, TransientAPIError, ErrorKind.SERVER_ERROR),
            (503, TransientAPIError, ErrorKind.SERVER_ERROR),
            (400, ServiceError, ErrorKind.UNKNOWN),
        ],
    )
    async def test_status_mapping(self, status, error_type, kind):
        source = make_source(lambda request: httpx.Response(status, text="nope"))

        with pytest.raises(error_type) as exc_info:
            await source.search("q")

        assert exc_info.value.kind == kind
        assert exc_info.value.status == status

    @pytest.mark.asyncio
    async def test_rate_limit_reads_retry_after(self):
        source = make_source(
            lambda request: httpx.Response(429, headers={"Retry-After": "7"})
        )

        with pytest.raises(RateLimitError) as exc_info:
            await source.search("q")

        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.kind == ErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_client_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(RequestTimeoutError):
            await make_source(handler).search("q")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransientAPIError) as exc_info:
            await make_source(handler).search("q")

        assert exc_info.value.kind == ErrorKind.CONNECTION

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        source = make_source(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(ServiceError, match="invalid JSON"):
            await source.search("q")

    @pytest.mark.asyncio
    async def test_error_field_in_body(self):
        source = make_source(
            lambda request: httpx.Response(200, json={"error": "quota exceeded"})
        )

        with pytest.raises(ServiceError, match="quota exceeded"):
            await source.search("q")
