"""
TTL-bounded result cache.

Entries expire ``ttl_ms`` after insertion; reads never extend an entry's
life. When full, the cache evicts the entry inserted earliest (FIFO), not
the least recently read one.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from hintflow.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")

logger = get_logger("hintflow.cache")


@dataclass
class CacheConfig:
    """Cache configuration.

    Attributes:
        ttl_ms: Entry lifetime in milliseconds
        max_entries: Maximum number of entries
        sweep_interval_ms: Period of the background expiry sweep (None = off)
    """

    ttl_ms: int = 300_000
    max_entries: int = 100
    sweep_interval_ms: int | None = None

    def __post_init__(self) -> None:
        if self.ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        if self.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if self.sweep_interval_ms is not None and self.sweep_interval_ms <= 0:
            raise ValueError("sweep_interval_ms must be positive")


@dataclass
class CacheEntry(Generic[T]):
    """A cached value and the time it was inserted (seconds)."""

    data: T
    inserted_at: float


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def total_requests(self) -> int:
        """Get total number of reads."""
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Get cache hit rate (0.0 to 1.0)."""
        total = self.total_requests
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "total_requests": self.total_requests,
            "hit_rate": self.hit_rate,
        }

    def reset(self) -> None:
        """Reset statistics."""
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.evictions = 0
        self.expirations = 0


class ResultCache(Generic[T]):
    """In-memory TTL cache with insertion-order eviction.

    Example:
        >>> cache: ResultCache[list[Annotation]] = ResultCache()
        >>> cache.set("hints:python:ab12", annotations)
        >>> cache.get("hints:python:ab12")
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            config: Cache configuration
            clock: Time source in seconds
        """
        self._config = config or CacheConfig()
        self._clock = clock
        # dict preserves insertion order; the first key is the oldest entry
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def config(self) -> CacheConfig:
        """Cache configuration."""
        return self._config

    @property
    def stats(self) -> CacheStats:
        """Cache statistics."""
        return self._stats

    @property
    def size(self) -> int:
        """Current number of entries, expired ones included."""
        return len(self._entries)

    def _is_expired(self, entry: CacheEntry[T], now: float) -> bool:
        return (now - entry.inserted_at) * 1000 > self._config.ttl_ms

    def get(self, key: str) -> T | None:
        """Get a cached value.

        An expired entry is removed and reported as a miss. A hit does not
        refresh the entry's insertion time.

        Returns:
            Cached value, or None on a miss
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                self._stats.expirations += 1
                self._stats.misses += 1
                return None

            self._stats.hits += 1
            return entry.data

    def set(self, key: str, data: T) -> None:
        """Insert a value.

        When the cache is full and ``key`` is new, the earliest-inserted
        entry is evicted first. Setting a present key replaces its value and
        timestamp in place.
        """
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._config.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                self._stats.evictions += 1
                logger.debug("Evicted oldest cache entry", entry=oldest)

            self._entries[key] = CacheEntry(data=data, inserted_at=self._clock())
            self._stats.sets += 1

    def invalidate(self, key: str) -> bool:
        """Remove an entry.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not self._is_expired(entry, self._clock())

    def purge_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                del self._entries[key]
            self._stats.expirations += len(expired)
        if expired:
            logger.debug("Purged expired cache entries", count=len(expired))
        return len(expired)

    @property
    def sweeper_running(self) -> bool:
        """Whether the background expiry sweep is active."""
        return self._sweeper is not None and not self._sweeper.done()

    def start_sweeper(self) -> None:
        """Start the periodic expiry sweep on the running event loop.

        Does nothing when no sweep interval is configured or a sweep is
        already running.
        """
        if self._config.sweep_interval_ms is None or self.sweeper_running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop_sweeper(self) -> None:
        """Cancel the periodic expiry sweep and wait for it to finish."""
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _sweep_loop(self) -> None:
        interval = (self._config.sweep_interval_ms or 0) / 1000
        while True:
            await asyncio.sleep(interval)
            self.purge_expired()
