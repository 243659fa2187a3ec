"""Pytest configuration and fixtures for QuoteGuard tests."""

from datetime import datetime, timedelta

import pytest

from quoteguard.datasource.base import SearchProvider
from quoteguard.models import SearchResult


class FakeClock:
    """Manually advanced clock for TTL and breaker timeouts."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeSearchProvider(SearchProvider):
    """
    Scripted search provider.

    Each queued item is either a list of SearchResult to return or an
    exception to raise. Once the queue is empty, `default` is used.
    """

    def __init__(self, responses=None, default=None, configured: bool = True):
        self.responses = list(responses or [])
        self.default = default if default is not None else []
        self.configured = configured
        self.calls: list[tuple[str, int]] = []
        self.closed = False

    @property
    def service_id(self) -> str:
        return "fake-search"

    def is_configured(self) -> bool:
        return self.configured

    async def search(self, query: str, result_count: int = 10) -> list[SearchResult]:
        self.calls.append((query, result_count))
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


def make_results(*texts: str) -> list[SearchResult]:
    """Search results whose snippets carry a double-quoted quote each."""
    return [
        SearchResult(snippet=f'He once said "{text}" to a crowd.', link=f"https://example.com/{i}")
        for i, text in enumerate(texts)
    ]


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
