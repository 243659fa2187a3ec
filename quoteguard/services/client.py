"""
ResilientQuoteClient - Quote fetching with a strict fallback chain.

Combines:
- QuoteCache for fresh hits and stale fallbacks
- CircuitBreaker shared by every caller of the search provider
- RetryExecutor running each attempt through the breaker

Fallback chain per fetch, in order:
1. live cache entry for the exact key
2. live search (retried), broadened once if it comes up short
3. stale cache entry for the exact key
4. any cache entry for the person
5. CacheExhaustedError carrying the breaker state
"""

import asyncio
from datetime import timedelta
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from quoteguard.datasource.base import SearchProvider
from quoteguard.extraction import extract_quote
from quoteguard.models import (
    Quote,
    QuoteMetadata,
    QuoteRequest,
    QuoteResponse,
    SearchResult,
)
from quoteguard.services.cache import QuoteCache
from quoteguard.services.circuit_breaker import CircuitBreaker, CircuitState
from quoteguard.services.errors import (
    AuthenticationError,
    CacheExhaustedError,
    CircuitOpenError,
    RequestTimeoutError,
    ValidationError,
)
from quoteguard.services.health import (
    HealthCheckRegistry,
    create_cache_health_check,
    create_circuit_breaker_health_check,
    create_search_health_check,
)
from quoteguard.services.retry import RetryConfig, RetryExecutor, RetryStats

Extractor = Callable[[str], str | None]


class ResilientQuoteClient:
    """
    Fetches quotes for a person through cache, retry and circuit breaker.

    Usage:
        client = ResilientQuoteClient(SerperSource(api_key))

        response = await client.fetch("Albert Einstein", topic="science", count=3)
        if response.metadata.stale:
            ...
    """

    def __init__(
        self,
        provider: SearchProvider,
        cache: QuoteCache | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        retry_config: RetryConfig | None = None,
        retry_executor: RetryExecutor | None = None,
        extractor: Extractor = extract_quote,
        cache_ttl: timedelta | None = None,
        search_timeout: float | None = 10.0,
        oversample: int = 2,
    ):
        self.provider = provider
        self.cache = cache if cache is not None else QuoteCache()
        self.circuit_breaker = (
            circuit_breaker
            if circuit_breaker is not None
            else CircuitBreaker(provider.service_id)
        )
        self._extract = extractor
        self._cache_ttl = cache_ttl
        self._search_timeout = search_timeout
        self._oversample = max(1, oversample)

        self._retry = retry_executor if retry_executor is not None else RetryExecutor()
        base_config = retry_config if retry_config is not None else self._retry.config
        # Every attempt goes through the shared breaker
        self._retry_config = RetryConfig(
            max_attempts=base_config.max_attempts,
            initial_delay=base_config.initial_delay,
            max_delay=base_config.max_delay,
            backoff_factor=base_config.backoff_factor,
            jitter=base_config.jitter,
            retryable_kinds=base_config.retryable_kinds,
            retryable_statuses=base_config.retryable_statuses,
            circuit_breaker=self.circuit_breaker,
            on_retry=base_config.on_retry or self._log_retry,
        )

    async def fetch(
        self,
        person: str,
        topic: str | None = None,
        count: int = 5,
    ) -> QuoteResponse:
        """
        Fetch `count` quotes for `person`, optionally about `topic`.

        Raises:
            ValidationError: If the request is malformed
            AuthenticationError: If the search provider rejects our key
            CacheExhaustedError: If the live search failed and nothing is cached
        """
        request = self._validate(person=person, topic=topic, count=count)
        return await self.fetch_request(request)

    async def fetch_request(self, request: QuoteRequest) -> QuoteResponse:
        """Run the fallback chain for an already validated request."""
        key = QuoteCache.generate_key(request.person, request.topic, request.count)

        cached = self.cache.get_fresh(key)
        if cached is not None:
            logger.info(f"Returning fresh cached quotes for '{key}'")
            return self._respond(cached, request.count, cached=True)

        try:
            quotes, stats = await self._search_quotes(request)
        except (ValidationError, AuthenticationError):
            raise
        except Exception as error:
            logger.error(
                f"Quote search for '{request.person}' failed, attempting fallback: {error}"
            )
            return self._fallback(request, key, error)

        if quotes:
            self.cache.set(key, quotes, self._cache_ttl)

        logger.info(
            f"Fetched {len(quotes)}/{request.count} quotes for '{request.person}' "
            f"(retries: {stats.retries})"
        )
        return self._respond(quotes, request.count, retries=stats.retries)

    async def _search_quotes(self, request: QuoteRequest) -> tuple[list[Quote], RetryStats]:
        query = self.provider.build_query(request.person, request.topic)
        outcome = await self._retry.run(
            lambda: self._search(query, request.count * self._oversample),
            self._retry_config,
        )
        stats = outcome.stats

        seen: set[str] = set()
        quotes = self._extract_quotes(outcome.value, request, seen)

        if len(quotes) < request.count:
            broader_query = (
                self.provider.build_query(request.person)
                if request.topic
                else f"famous quotes by {request.person}"
            )
            logger.warning(
                f"Only {len(quotes)}/{request.count} quotes found for "
                f"'{request.person}', trying broader search"
            )
            try:
                broader = await self._retry.run(
                    lambda: self._search(
                        broader_query, (request.count - len(quotes)) * 3
                    ),
                    self._retry_config,
                )
            except (ValidationError, AuthenticationError):
                raise
            except Exception as error:
                if not quotes:
                    raise
                logger.warning(
                    f"Broader search for '{request.person}' failed, keeping "
                    f"{len(quotes)} quotes: {error}"
                )
            else:
                quotes.extend(self._extract_quotes(broader.value, request, seen))
                stats = RetryStats(
                    attempts=stats.attempts + broader.stats.retries,
                    total_delay=stats.total_delay + broader.stats.total_delay,
                    last_error=broader.stats.last_error or stats.last_error,
                    succeeded=True,
                )

        return quotes[: request.count], stats

    async def _search(self, query: str, result_count: int) -> list[SearchResult]:
        if self._search_timeout is None:
            return await self.provider.search(query, result_count)
        try:
            return await asyncio.wait_for(
                self.provider.search(query, result_count),
                timeout=self._search_timeout,
            )
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(self.provider.service_id, self._search_timeout) from e

    def _extract_quotes(
        self,
        results: list[SearchResult],
        request: QuoteRequest,
        seen: set[str],
    ) -> list[Quote]:
        quotes: list[Quote] = []
        for result in results:
            if len(seen) >= request.count:
                break
            text = self._extract(result.snippet)
            if not text or text in seen:
                continue
            seen.add(text)
            quotes.append(Quote(text=text, author=request.person, source=result.link or None))
        return quotes

    def _fallback(
        self,
        request: QuoteRequest,
        key: str,
        error: Exception,
    ) -> QuoteResponse:
        # A fail-fast rejection never reached the search
        default_attempts = 0 if isinstance(error, CircuitOpenError) else 1
        attempts = getattr(error, "attempts", default_attempts)
        retries = max(0, attempts - 1)

        exact = self.cache.get_with_fallback(key, record_miss=False)
        if exact.data is not None:
            logger.warning(f"Serving stale cached quotes for '{key}' after failure")
            return self._respond(
                exact.data, request.count, cached=True, stale=True, fallback=True,
                retries=retries,
            )

        broader = self.cache.find_for_person(request.person)
        if broader is not None:
            broader_key, lookup = broader
            if lookup.data is not None:
                logger.warning(
                    f"Serving cached quotes from '{broader_key}' for '{key}' after failure"
                )
                return self._respond(
                    lookup.data, request.count, cached=True, stale=lookup.stale,
                    fallback=True, retries=retries,
                )

        state = self.circuit_breaker.state
        raise CacheExhaustedError(
            person=request.person,
            breaker_state=state.value,
            tried=["live fetch", "retries", "exact-key cache", "person cache"],
            attempts=attempts,
            cause=error,
        ) from error

    @staticmethod
    def _respond(
        quotes: list[Quote],
        count: int,
        cached: bool = False,
        stale: bool = False,
        fallback: bool = False,
        retries: int = 0,
    ) -> QuoteResponse:
        return QuoteResponse(
            quotes=list(quotes[:count]),
            metadata=QuoteMetadata(
                cached=cached, stale=stale, fallback=fallback, retries=retries
            ),
        )

    @staticmethod
    def _validate(**params: Any) -> QuoteRequest:
        try:
            return QuoteRequest(**params)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ValidationError(first.get("msg", "Invalid request"), field=field) from e

    @staticmethod
    def _log_retry(error: Exception, attempt: int) -> None:
        logger.warning(f"Retrying search after attempt {attempt}: {error}")

    # Health and status methods

    def get_health_status(self) -> dict[str, Any]:
        """Breaker and cache status with an operator recommendation."""
        breaker = self.circuit_breaker.get_stats()
        cache = self.cache.get_stats()
        return {
            "circuit_breaker": breaker.to_dict(),
            "cache": cache.to_dict(),
            "recommendation": _recommendation(
                breaker.state, breaker.consecutive_failures, cache.hits, cache.misses
            ),
        }

    def register_health_checks(self, registry: HealthCheckRegistry) -> None:
        """Register cache, breaker and provider checks."""
        registry.register(
            f"circuit-breaker-{self.circuit_breaker.service_id}",
            create_circuit_breaker_health_check(self.circuit_breaker),
        )
        registry.register("quote-cache", create_cache_health_check(self.cache))
        if self.provider.is_configured():
            registry.register(
                f"{self.provider.service_id}-api",
                create_search_health_check(
                    self.provider.ping, name=f"{self.provider.service_id}-api"
                ),
            )

    def reset(self) -> None:
        """Reset the breaker and drop all cached quotes."""
        self.circuit_breaker.reset()
        self.cache.clear()
        self.cache.reset_stats()
        logger.info("Resilient quote client reset")

    async def prewarm(self, people: list[str], count: int = 5) -> int:
        """Fetch quotes for common people ahead of time. Returns successes."""
        warmed = 0
        for person in people:
            try:
                await self.fetch(person, count=count)
                warmed += 1
            except Exception as e:
                logger.warning(f"Failed to pre-warm cache for '{person}': {e}")
        logger.info(f"Pre-warmed quote cache for {warmed}/{len(people)} people")
        return warmed

    async def close(self) -> None:
        """Close the provider and cleanup resources."""
        await self.provider.close()
        logger.debug("ResilientQuoteClient closed")

    async def __aenter__(self) -> "ResilientQuoteClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _recommendation(
    state: CircuitState,
    failures: int,
    hits: int,
    misses: int,
) -> str:
    if state == CircuitState.OPEN:
        return "Service is down. Using cached responses only."
    if state == CircuitState.HALF_OPEN:
        return "Service is recovering. Some requests may fail."
    if failures > 3:
        return "Service experiencing intermittent failures. Monitor closely."
    lookups = hits + misses
    if lookups > 50 and hits / lookups < 0.3:
        return "Low cache hit rate. Consider pre-warming common queries."
    return "System operating normally."
