"""
Cache - In-memory cache with TTL, insertion-order eviction and stale reads.

Features:
- Per-entry TTL with lazy expiry on get()
- Eviction of the oldest-inserted entry when full
- Expired entries stay readable through get_with_fallback() until cleanup()
- Thread-safe: every operation runs under one lock
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

from quoteguard.models import Quote

T = TypeVar("T")

Clock = Callable[[], datetime]


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    value: T
    created_at: datetime
    last_access_at: datetime
    expires_at: datetime
    hit_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is past its TTL."""
        return now > self.expires_at


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    stale_hits: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "stale_hits": self.stale_hits,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": round(self.hit_rate, 2),
        }


@dataclass
class CacheLookup(Generic[T]):
    """Result from a lookup that tolerates expired entries."""

    data: T | None
    stale: bool = False


class Cache(Generic[T]):
    """
    Generic key/value cache with TTL.

    Usage:
        cache: Cache[dict] = Cache(max_size=100, default_ttl=timedelta(minutes=5))

        cache.set("my_key", data)
        value = cache.get("my_key")  # None when missing or expired
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: timedelta = timedelta(minutes=5),
        clock: Clock = datetime.now,
        debug: bool = False,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: dict[str, CacheEntry[T]] = {}
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._debug = debug
        self._lock = threading.RLock()
        self._stats = CacheStats()

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def default_ttl(self) -> timedelta:
        return self._default_ttl

    def get(self, key: str) -> T | None:
        """
        Get a live value.

        Expired entries count as a miss and are dropped on discovery.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key[:50]}")
                return None

            now = self._clock()
            if entry.is_expired(now):
                del self._entries[key]
                self._stats.misses += 1
                self._log(f"EXPIRED: {key[:50]}")
                return None

            entry.hit_count += 1
            entry.last_access_at = now
            self._stats.hits += 1
            self._log(f"HIT: {key[:50]}")
            return entry.value

    def set(self, key: str, value: T, ttl: timedelta | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live (uses default if not specified)
        """
        ttl = ttl if ttl is not None else self._default_ttl
        now = self._clock()

        with self._lock:
            if key in self._entries:
                # Re-insert so dict order keeps tracking insertion time
                del self._entries[key]
            elif len(self._entries) >= self._max_size:
                self._evict_oldest()

            self._entries[key] = CacheEntry(
                value=value,
                created_at=now,
                last_access_at=now,
                expires_at=now + ttl,
            )
            self._log(f"SET: {key[:50]} (TTL: {ttl.total_seconds()}s)")

    def has(self, key: str) -> bool:
        """Check if a live entry exists. Does not touch hit/miss counters."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
                self._log(f"DELETE: {key[:50]}")
                return True
            return False

    def keys(self) -> list[str]:
        """All keys currently held, expired-but-unswept ones included."""
        with self._lock:
            return list(self._entries)

    def peek(self, key: str) -> CacheEntry[T] | None:
        """Copy of the raw entry, expired or not, without touching stats."""
        with self._lock:
            entry = self._entries.get(key)
            return replace(entry) if entry is not None else None

    def get_fresh(self, key: str) -> T | None:
        """
        Get a live value, leaving an expired entry in place for a later
        get_with_fallback(). Counts one hit or one miss.
        """
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None or entry.is_expired(now):
                self._stats.misses += 1
                self._log(f"MISS: {key[:50]}")
                return None

            entry.hit_count += 1
            entry.last_access_at = now
            self._stats.hits += 1
            self._log(f"HIT: {key[:50]}")
            return entry.value

    def get_with_fallback(self, key: str, record_miss: bool = True) -> CacheLookup[T]:
        """
        Get a value, falling back to an expired entry that has not been swept.

        Returns CacheLookup(data=None) only when the key is not held at all.
        Pass record_miss=False when the miss was already counted for this lookup.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                if record_miss:
                    self._stats.misses += 1
                self._log(f"MISS: {key[:50]}")
                return CacheLookup(data=None)

            now = self._clock()
            entry.hit_count += 1
            entry.last_access_at = now

            if entry.is_expired(now):
                self._stats.stale_hits += 1
                logger.warning(
                    f"Returning stale cache data for '{key}' "
                    f"(expired at {entry.expires_at.isoformat()})"
                )
                return CacheLookup(data=entry.value, stale=True)

            self._stats.hits += 1
            self._log(f"HIT: {key[:50]}")
            return CacheLookup(data=entry.value, stale=False)

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._log(f"CLEAR: {count} entries removed")

    def cleanup(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        with self._lock:
            now = self._clock()
            expired_keys = [k for k, v in self._entries.items() if v.expires_at < now]
            for key in expired_keys:
                del self._entries[key]

        if expired_keys:
            logger.debug(f"Cache cleanup: {len(expired_keys)} expired entries removed")
        return len(expired_keys)

    def get_stats(self) -> CacheStats:
        """Get a snapshot of cache statistics."""
        with self._lock:
            return replace(
                self._stats,
                size=len(self._entries),
                max_size=self._max_size,
            )

    def reset_stats(self) -> None:
        """Zero the counters; size keeps tracking the live map."""
        with self._lock:
            self._stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_oldest(self) -> None:
        """Evict the oldest-inserted entry."""
        if not self._entries:
            return

        # min() keeps the first of equal timestamps, which is the earliest insert
        oldest_key = min(self._entries, key=lambda k: self._entries[k].created_at)
        del self._entries[oldest_key]
        self._stats.evictions += 1
        logger.debug(f"Cache eviction: {oldest_key[:50]}")

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Cache] {message}")


class QuoteCache(Cache[list[Quote]]):
    """Cache for quote lists, keyed by person, topic and count."""

    def __init__(
        self,
        max_size: int = 500,
        default_ttl: timedelta = timedelta(minutes=10),
        clock: Clock = datetime.now,
        debug: bool = False,
    ):
        super().__init__(
            max_size=max_size,
            default_ttl=default_ttl,
            clock=clock,
            debug=debug,
        )

    @staticmethod
    def generate_key(
        person: str,
        topic: str | None = None,
        count: int | None = None,
    ) -> str:
        """
        Build the cache key, e.g. ("Einstein", "science", 3) -> "einstein:science:3".

        ":" and "\\" inside a part are backslash-escaped, so a person named
        "a:b" never shares a key or a key prefix with person "a", topic "b".
        """
        parts = [_key_part(person)]
        if topic and topic.strip():
            parts.append(_key_part(topic))
        if count:
            parts.append(str(count))
        return ":".join(parts)

    def find_for_person(self, person: str) -> tuple[str, CacheLookup[list[Quote]]] | None:
        """
        Find any cached quotes for a person, regardless of topic or count.

        The person-only key wins; otherwise the most recently stored
        "person:..." entry is used.
        """
        broader_key = self.generate_key(person)
        with self._lock:
            if broader_key in self._entries:
                return broader_key, self.get_with_fallback(broader_key)

            prefix = f"{broader_key}:"
            candidates = [k for k in self._entries if k.startswith(prefix)]
            if not candidates:
                return None

            newest = max(candidates, key=lambda k: self._entries[k].created_at)
            return newest, self.get_with_fallback(newest)


def _key_part(text: str) -> str:
    return text.strip().lower().replace("\\", "\\\\").replace(":", "\\:")
