"""
Service layer infrastructure - resilience patterns for the quote search.

Provides:
- Cache / QuoteCache: TTL cache with insertion-order eviction and stale reads
- CircuitBreaker: Prevents cascading failures
- RetryExecutor: Exponential backoff with jitter
- HealthCheckRegistry: Aggregated component health
- ResilientQuoteClient: Unified client combining all patterns
"""

from quoteguard.services.errors import (
    AuthenticationError,
    CacheExhaustedError,
    CircuitOpenError,
    ErrorKind,
    RateLimitError,
    RequestTimeoutError,
    RetryExhaustedError,
    ServiceError,
    TransientAPIError,
    ValidationError,
)
from quoteguard.services.cache import Cache, CacheEntry, CacheLookup, QuoteCache
from quoteguard.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from quoteguard.services.retry import RetryConfig, RetryExecutor, RetryStats
from quoteguard.services.health import (
    ComponentHealth,
    HealthCheckRegistry,
    HealthStatus,
    SystemHealth,
)
from quoteguard.services.client import ResilientQuoteClient

__all__ = [
    # Errors
    "ErrorKind",
    "ServiceError",
    "ValidationError",
    "TransientAPIError",
    "RequestTimeoutError",
    "RateLimitError",
    "AuthenticationError",
    "CircuitOpenError",
    "RetryExhaustedError",
    "CacheExhaustedError",
    # Cache
    "Cache",
    "CacheEntry",
    "CacheLookup",
    "QuoteCache",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    # Retry
    "RetryConfig",
    "RetryExecutor",
    "RetryStats",
    # Health
    "ComponentHealth",
    "HealthCheckRegistry",
    "HealthStatus",
    "SystemHealth",
    # Client
    "ResilientQuoteClient",
]
