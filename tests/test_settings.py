"""Tests for settings loading."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from quoteguard.settings import Settings, load_settings


class TestSettings:
    """Test defaults, environment aliases and builders."""

    def test_defaults(self):
        settings = Settings()

        assert settings.cache_max_size == 500
        assert settings.cache_ttl == timedelta(minutes=10)
        assert settings.retry_max_attempts == 3
        assert settings.http_port == 8000

    def test_load_from_environment(self, monkeypatch):
        monkeypatch.setenv("SERPER_API_KEY", "secret")
        monkeypatch.setenv("CACHE_TTL", "30")
        monkeypatch.setenv("RETRY_JITTER", "false")
        monkeypatch.setenv("BREAKER_OPEN_TIMEOUT", "15")

        settings = load_settings()

        assert settings.serper_api_key == "secret"
        assert settings.cache_ttl == timedelta(seconds=30)
        assert settings.retry_config().jitter is False
        assert settings.circuit_breaker_config().open_timeout == timedelta(seconds=15)

    def test_builders(self):
        settings = Settings(
            BREAKER_FAILURE_THRESHOLD=7,
            RETRY_MAX_ATTEMPTS=4,
            RETRY_MAX_DELAY=3.5,
        )

        assert settings.circuit_breaker_config().failure_threshold == 7
        retry = settings.retry_config()
        assert retry.max_attempts == 4
        assert retry.max_delay == 3.5
        assert retry.circuit_breaker is None

    @pytest.mark.parametrize(
        "env",
        [
            {"CACHE_MAX_SIZE": 0},
            {"RETRY_MAX_ATTEMPTS": 0},
            {"HTTP_PORT": 70000},
            {"SEARCH_TIMEOUT": 0},
        ],
    )
    def test_rejects_out_of_range(self, env):
        with pytest.raises(ValidationError):
            Settings(**env)
