import os
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from quoteguard.services.circuit_breaker import CircuitBreakerConfig
from quoteguard.services.retry import RetryConfig

load_dotenv()


class Settings(BaseModel):
    # Search Provider Configuration
    serper_api_key: str = Field(default="", alias="SERPER_API_KEY")
    serper_base_url: str = Field(
        default="https://google.serper.dev", alias="SERPER_BASE_URL"
    )
    search_timeout: float = Field(default=10.0, gt=0, alias="SEARCH_TIMEOUT")

    # Cache Configuration
    cache_max_size: int = Field(default=500, ge=1, alias="CACHE_MAX_SIZE")
    cache_ttl_seconds: int = Field(default=600, ge=1, alias="CACHE_TTL")
    cache_cleanup_interval_seconds: int = Field(
        default=60, ge=1, alias="CACHE_CLEANUP_INTERVAL"
    )

    # Circuit Breaker Configuration
    breaker_failure_threshold: int = Field(
        default=5, ge=1, alias="BREAKER_FAILURE_THRESHOLD"
    )
    breaker_success_threshold: int = Field(
        default=2, ge=1, alias="BREAKER_SUCCESS_THRESHOLD"
    )
    breaker_open_timeout_seconds: int = Field(
        default=60, ge=1, alias="BREAKER_OPEN_TIMEOUT"
    )

    # Retry Configuration
    retry_max_attempts: int = Field(default=3, ge=1, alias="RETRY_MAX_ATTEMPTS")
    retry_initial_delay: float = Field(default=1.0, ge=0, alias="RETRY_INITIAL_DELAY")
    retry_max_delay: float = Field(default=10.0, ge=0, alias="RETRY_MAX_DELAY")
    retry_backoff_factor: float = Field(default=2.0, ge=1, alias="RETRY_BACKOFF_FACTOR")
    retry_jitter: bool = Field(default=True, alias="RETRY_JITTER")

    # Health Check Configuration
    health_check_interval_seconds: int = Field(
        default=60, ge=1, alias="HEALTH_CHECK_INTERVAL"
    )
    health_check_timeout_seconds: float = Field(
        default=10, gt=0, alias="HEALTH_CHECK_TIMEOUT"
    )

    # Server Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    http_host: str = Field(default="127.0.0.1", alias="HTTP_HOST")
    http_port: int = Field(default=8000, ge=1, le=65535, alias="HTTP_PORT")

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_ttl_seconds)

    @property
    def cache_cleanup_interval(self) -> timedelta:
        return timedelta(seconds=self.cache_cleanup_interval_seconds)

    @property
    def health_check_interval(self) -> timedelta:
        return timedelta(seconds=self.health_check_interval_seconds)

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.breaker_failure_threshold,
            success_threshold=self.breaker_success_threshold,
            open_timeout=timedelta(seconds=self.breaker_open_timeout_seconds),
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            backoff_factor=self.retry_backoff_factor,
            jitter=self.retry_jitter,
        )


def load_settings() -> Settings:
    """Read settings from the process environment (and .env)."""
    return Settings.model_validate(dict(os.environ))


global_settings = load_settings()
