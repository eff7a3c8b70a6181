"""Tests for cache module."""

import asyncio
import io
import json

import pytest

from hintflow.cache import CacheConfig, CacheKey, CacheKeyGenerator, CacheStats, ResultCache
from hintflow.telemetry import HintFlowLogger
from hintflow.types import AnnotationRequest, SkillLevel


class TestCacheConfig:
    """Tests for CacheConfig."""

    def test_defaults(self) -> None:
        """Test default configuration."""
        config = CacheConfig()
        assert config.ttl_ms == 300_000
        assert config.max_entries == 100
        assert config.sweep_interval_ms is None

    def test_invalid_values(self) -> None:
        """Test configuration validation."""
        with pytest.raises(ValueError):
            CacheConfig(ttl_ms=0)
        with pytest.raises(ValueError):
            CacheConfig(max_entries=0)
        with pytest.raises(ValueError):
            CacheConfig(sweep_interval_ms=0)


class TestCacheStats:
    """Tests for CacheStats."""

    def test_hit_rate(self) -> None:
        """Test hit rate calculation."""
        stats = CacheStats(hits=3, misses=1)
        assert stats.total_requests == 4
        assert stats.hit_rate == 0.75

    def test_hit_rate_empty(self) -> None:
        """Test hit rate with no reads."""
        assert CacheStats().hit_rate == 0.0

    def test_reset(self) -> None:
        """Test resetting statistics."""
        stats = CacheStats(hits=1, misses=2, sets=3, evictions=4, expirations=5)
        stats.reset()
        assert stats.to_dict()["total_requests"] == 0
        assert stats.evictions == 0


class TestResultCache:
    """Tests for ResultCache."""

    def test_get_miss(self, clock) -> None:
        """Test reading an absent key."""
        cache: ResultCache[str] = ResultCache(clock=clock)
        assert cache.get("missing") is None
        assert cache.stats.misses == 1

    def test_set_and_get(self, clock) -> None:
        """Test storing and reading a value."""
        cache: ResultCache[list[int]] = ResultCache(clock=clock)
        cache.set("k", [1, 2])
        assert cache.get("k") == [1, 2]
        assert cache.stats.hits == 1
        assert "k" in cache

    def test_evicts_earliest_inserted(self, clock) -> None:
        """Test FIFO eviction when full."""
        cache: ResultCache[int] = ResultCache(CacheConfig(max_entries=3), clock=clock)
        for i, key in enumerate(["a", "b", "c"]):
            cache.set(key, i)
            clock.advance(1)

        # Reading "a" does not protect it from eviction
        assert cache.get("a") == 0
        cache.set("d", 3)

        assert cache.size == 3
        assert cache.get("a") is None
        assert cache.get("b") == 1
        assert cache.get("d") == 3
        assert cache.stats.evictions == 1

    def test_evicts_exactly_one(self, clock) -> None:
        """Test that each insert beyond capacity evicts a single entry."""
        cache: ResultCache[int] = ResultCache(CacheConfig(max_entries=2), clock=clock)
        for i in range(5):
            cache.set(str(i), i)
        assert cache.size == 2
        assert cache.stats.evictions == 3
        assert cache.get("3") == 3
        assert cache.get("4") == 4

    def test_eviction_log_keeps_cache_key(self, clock) -> None:
        """Test that the evicted cache key is logged unmasked."""
        stream = io.StringIO()
        HintFlowLogger.configure(level="DEBUG", format="json", stream=stream)
        try:
            cache: ResultCache[int] = ResultCache(CacheConfig(max_entries=1), clock=clock)
            cache.set("hints:javascript:intermediate:abc123", 1)
            cache.set("hints:javascript:intermediate:def456", 2)

            records = [json.loads(line) for line in stream.getvalue().splitlines()]
            evicted = [r for r in records if r["message"] == "Evicted oldest cache entry"]
            assert evicted[0]["entry"] == "hints:javascript:intermediate:abc123"
        finally:
            HintFlowLogger.configure(level="INFO", format="json")

    def test_reset_present_key_does_not_evict(self, clock) -> None:
        """Test overwriting an existing key at capacity."""
        cache: ResultCache[int] = ResultCache(CacheConfig(max_entries=2), clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)

        assert cache.size == 2
        assert cache.get("a") == 10
        assert cache.get("b") == 2
        assert cache.stats.evictions == 0

    def test_expired_entry_is_miss_and_removed(self, clock) -> None:
        """Test TTL expiry on read."""
        cache: ResultCache[str] = ResultCache(CacheConfig(ttl_ms=1000), clock=clock)
        cache.set("k", "v")

        clock.advance(1.0)
        assert cache.get("k") == "v"

        clock.advance(0.5)
        assert cache.get("k") is None
        assert cache.size == 0
        assert cache.stats.expirations == 1

    def test_hit_does_not_extend_life(self, clock) -> None:
        """Test that reads never refresh an entry."""
        cache: ResultCache[str] = ResultCache(CacheConfig(ttl_ms=1000), clock=clock)
        cache.set("k", "v")
        for _ in range(3):
            clock.advance(0.3)
            assert cache.get("k") == "v"
        clock.advance(0.3)
        assert cache.get("k") is None

    def test_set_refreshes_timestamp(self, clock) -> None:
        """Test that re-setting a key restarts its lifetime."""
        cache: ResultCache[str] = ResultCache(CacheConfig(ttl_ms=1000), clock=clock)
        cache.set("k", "v1")
        clock.advance(0.8)
        cache.set("k", "v2")
        clock.advance(0.8)
        assert cache.get("k") == "v2"

    def test_invalidate(self, clock) -> None:
        """Test explicit removal."""
        cache: ResultCache[str] = ResultCache(clock=clock)
        cache.set("k", "v")
        assert cache.invalidate("k") is True
        assert cache.invalidate("k") is False
        assert cache.get("k") is None

    def test_clear(self, clock) -> None:
        """Test removing everything."""
        cache: ResultCache[int] = ResultCache(clock=clock)
        for i in range(10):
            cache.set(str(i), i)
        cache.clear()
        assert cache.size == 0

    def test_contains_ignores_expired(self, clock) -> None:
        """Test membership honours expiry without removing."""
        cache: ResultCache[str] = ResultCache(CacheConfig(ttl_ms=1000), clock=clock)
        cache.set("k", "v")
        clock.advance(2)
        assert "k" not in cache
        assert cache.size == 1
        assert 42 not in cache

    def test_purge_expired(self, clock) -> None:
        """Test bulk removal of expired entries."""
        cache: ResultCache[int] = ResultCache(CacheConfig(ttl_ms=1000), clock=clock)
        cache.set("old1", 1)
        cache.set("old2", 2)
        clock.advance(2)
        cache.set("new", 3)

        assert cache.purge_expired() == 2
        assert cache.size == 1
        assert cache.get("new") == 3


class TestCacheSweeper:
    """Tests for the background expiry sweep."""

    @pytest.mark.asyncio
    async def test_sweeper_not_started_without_interval(self, clock) -> None:
        """Test that no sweep runs without an interval."""
        cache: ResultCache[int] = ResultCache(clock=clock)
        cache.start_sweeper()
        assert cache.sweeper_running is False

    @pytest.mark.asyncio
    async def test_sweeper_purges_and_stops(self, clock) -> None:
        """Test that the sweep removes expired entries and stops cleanly."""
        cache: ResultCache[int] = ResultCache(
            CacheConfig(ttl_ms=1000, sweep_interval_ms=10), clock=clock
        )
        cache.set("k", 1)
        clock.advance(2)

        cache.start_sweeper()
        assert cache.sweeper_running is True
        for _ in range(50):
            if cache.size == 0:
                break
            await asyncio.sleep(0.01)
        assert cache.size == 0

        await cache.stop_sweeper()
        assert cache.sweeper_running is False
        await cache.stop_sweeper()


class TestCacheKeyGenerator:
    """Tests for CacheKeyGenerator."""

    def test_deterministic(self) -> None:
        """Test that equal requests give equal keys."""
        generator = CacheKeyGenerator()
        request = AnnotationRequest(code="x = 1", language="python")
        assert generator.generate(request) == generator.generate(request)

    def test_key_format(self) -> None:
        """Test key layout."""
        key = CacheKeyGenerator().generate(
            AnnotationRequest(code="x = 1", language="Python", skill_level=SkillLevel.ADVANCED)
        )
        prefix, language, skill, digest = key.key.split(":")
        assert (prefix, language, skill) == ("hints", "python", "advanced")
        assert len(digest) == 16
        assert key.code_hash.startswith(digest)

    def test_facets_change_key(self) -> None:
        """Test that code, language, and skill level all affect the key."""
        generator = CacheKeyGenerator()
        base = AnnotationRequest(code="x = 1", language="python")
        keys = {
            generator.generate(base).key,
            generator.generate(base.model_copy(update={"code": "x = 2"})).key,
            generator.generate(base.model_copy(update={"language": "javascript"})).key,
            generator.generate(
                base.model_copy(update={"skill_level": SkillLevel.BEGINNER})
            ).key,
        }
        assert len(keys) == 4

    def test_cache_key_equality(self) -> None:
        """Test CacheKey comparison with strings."""
        key = CacheKey(key="hints:python:x")
        assert key == "hints:python:x"
        assert str(key) == "hints:python:x"
        assert hash(key) == hash("hints:python:x")
