import json
from datetime import timedelta

import pytest

from lottopipe.services.cache import CacheManager
from lottopipe.services.storage import (
    CacheLevel,
    FileStore,
    MemoryStore,
    SqliteStore,
    StorageBackend,
)
from lottopipe.services.validator import validate
from tests.conftest import make_candidate


class BrokenStore(MemoryStore):
    """A durable-looking tier whose every operation fails."""

    level = CacheLevel.PERSISTENT

    async def get(self, key, now):
        raise OSError("disk unavailable")

    async def set(self, entry):
        raise OSError("disk unavailable")


class TestMemoryBackend:
    async def test_set_then_get(self, memory_cache):
        await memory_cache.set("lottery:latest", {"round": 1100})

        assert await memory_cache.get("lottery:latest") == {"round": 1100}

    async def test_miss_returns_none(self, memory_cache):
        assert await memory_cache.get("lottery:latest") is None

    async def test_entry_expires_after_ttl(self, memory_cache, clock):
        await memory_cache.set("lottery:latest", "draw", ttl=timedelta(minutes=30))

        clock.advance(minutes=30)
        assert await memory_cache.get("lottery:latest") == "draw"

        clock.advance(seconds=1)
        assert await memory_cache.get("lottery:latest") is None
        assert await memory_cache.keys() == []

    async def test_default_ttl_per_tier(self, memory_cache, clock):
        await memory_cache.set("k", "v")

        clock.advance(minutes=5, seconds=1)

        assert await memory_cache.get("k") is None

    async def test_zero_ttl_is_not_the_default(self, memory_cache, clock):
        await memory_cache.set("k", 1, ttl=timedelta(0))

        clock.advance(minutes=1)

        assert await memory_cache.get("k") is None

    async def test_invalidate(self, memory_cache):
        await memory_cache.set("lottery:latest", 1)

        assert await memory_cache.invalidate("lottery:latest")
        assert not await memory_cache.invalidate("lottery:latest")
        assert await memory_cache.get("lottery:latest") is None

    async def test_invalidate_pattern_removes_only_matches(self, memory_cache):
        keys = [
            "lottery:latest",
            "lottery:history:recent:20",
            "lottery:history:range:1-10",
            "lottery:statistics:100:with_analysis",
            "lottery:frequency:50:recent",
            "other:history",
        ]
        for key in keys:
            await memory_cache.set(key, key)

        removed = await memory_cache.invalidate_pattern(r"lottery:(history|statistics|frequency).*")

        assert removed == 4
        assert await memory_cache.keys() == ["lottery:latest", "other:history"]

    async def test_stats(self, memory_cache):
        await memory_cache.set("a", [1, 2, 3])
        await memory_cache.get("a")
        await memory_cache.get("a")
        await memory_cache.get("b")

        stats = await memory_cache.get_stats()

        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.total_requests == 3
        assert stats.hit_rate == pytest.approx(2 / 3)
        assert stats.size == 1
        assert stats.memory_usage == len("[1,2,3]")
        assert stats.tier_hits == {"memory": 2}
        assert stats.to_dict()["hit_rate"] == "66.67%"

    async def test_stats_are_a_snapshot(self, memory_cache):
        stats = await memory_cache.get_stats()
        stats.hits = 100
        stats.tier_hits["memory"] = 5

        fresh = await memory_cache.get_stats()
        assert fresh.hits == 0
        assert fresh.tier_hits == {}

    async def test_cleanup_expired(self, memory_cache, clock):
        await memory_cache.set("short", 1, ttl=timedelta(minutes=1))
        await memory_cache.set("long", 2, ttl=timedelta(hours=1))
        clock.advance(minutes=2)

        assert await memory_cache.cleanup_expired() == 1
        assert await memory_cache.keys() == ["long"]
        assert (await memory_cache.get_stats()).last_cleanup == clock.now


class TestDurableBackend:
    async def test_tiers_in_order(self, durable_cache):
        stores = durable_cache.backend.stores

        assert [type(s) for s in stores] == [MemoryStore, SqliteStore, FileStore]

    async def test_value_written_to_every_tier(self, durable_cache, clock):
        await durable_cache.set("lottery:latest", {"round": 1100})

        for store in durable_cache.backend.stores:
            entry = await store.get("lottery:latest", clock())
            assert entry is not None
            assert entry.data == {"round": 1100}

    async def test_model_round_trips_through_durable_tiers(self, durable_cache, clock):
        draw = validate(make_candidate(1100))
        await durable_cache.set("lottery:latest", draw)

        await durable_cache.backend.memory.clear()
        cached = await durable_cache.get("lottery:latest")

        assert validate(cached) == draw

    async def test_backfill_from_slower_tier(self, durable_cache, clock):
        await durable_cache.set("lottery:latest", "draw", ttl=timedelta(minutes=30))
        memory, local, _ = durable_cache.backend.stores
        await memory.clear()
        await local.clear()
        clock.advance(minutes=10)

        assert await durable_cache.get("lottery:latest") == "draw"

        for store in (memory, local):
            entry = await store.get("lottery:latest", clock())
            assert entry is not None
            # Backfilled copies keep the original timestamp and TTL
            assert entry.timestamp == clock.now - timedelta(minutes=10)
            assert entry.ttl == timedelta(minutes=30)

        stats = await durable_cache.get_stats()
        assert stats.tier_hits == {"persistent": 1}

    async def test_backfilled_entry_does_not_outlive_ttl(self, durable_cache, clock):
        await durable_cache.set("k", "v", ttl=timedelta(minutes=30))
        await durable_cache.backend.memory.clear()
        clock.advance(minutes=20)
        await durable_cache.get("k")

        clock.advance(minutes=11)

        assert await durable_cache.get("k") is None

    async def test_invalidate_pattern_across_tiers(self, durable_cache, clock):
        for key in ["lottery:latest", "lottery:history:recent:20", "lottery:frequency:50:recent"]:
            await durable_cache.set(key, key)

        removed = await durable_cache.invalidate_pattern(r"lottery:(history|statistics|frequency).*")

        assert removed == 2
        for store in durable_cache.backend.stores:
            assert sorted(await store.keys()) == ["lottery:latest"]

    async def test_file_tier_is_self_describing(self, durable_cache, clock):
        await durable_cache.set("lottery:history:range:1-10", [1, 2], ttl=timedelta(hours=1))
        file_store = durable_cache.backend.stores[-1]

        path = file_store.path_for("lottery:history:range:1-10")
        record = json.loads(path.read_text(encoding="utf-8"))

        assert "/" not in path.name and ":" not in path.name
        assert record["key"] == "lottery:history:range:1-10"
        assert record["data"] == [1, 2]
        assert record["ttl"] == 3600
        assert record["level"] == int(CacheLevel.PERSISTENT)

    async def test_corrupt_file_is_a_miss(self, durable_cache, clock):
        file_store = durable_cache.backend.stores[-1]
        await file_store.initialize()
        file_store.path_for("k").write_text("{not json", encoding="utf-8")

        assert await file_store.get("k", clock()) is None
        assert not file_store.path_for("k").exists()

    async def test_sweep_skips_lazy_tier(self, durable_cache, clock):
        await durable_cache.set("k", "v", ttl=timedelta(minutes=1))
        clock.advance(minutes=2)

        assert await durable_cache.cleanup_expired() == 2

        file_store = durable_cache.backend.stores[-1]
        assert await file_store.keys() == ["k"]
        assert await durable_cache.get("k") is None
        assert await file_store.keys() == []

    async def test_sweep_can_include_lazy_tier(self, durable_cache, clock):
        await durable_cache.set("k", "v", ttl=timedelta(minutes=1))
        clock.advance(minutes=2)

        assert await durable_cache.cleanup_expired(include_unswept=True) == 3
        assert await durable_cache.keys() == []


class TestTierFailures:
    @pytest.fixture
    async def cache(self, clock):
        backend = StorageBackend(name="flaky", stores=[MemoryStore(), BrokenStore()])
        cache = CacheManager(backend, clock=clock)
        await cache.initialize()
        return cache

    async def test_write_failure_is_swallowed(self, cache):
        await cache.set("lottery:latest", "draw")

        assert await cache.get("lottery:latest") == "draw"
        assert (await cache.get_stats()).storage_errors == 1

    async def test_read_failure_is_a_miss(self, cache):
        assert await cache.get("missing") is None
        assert (await cache.get_stats()).storage_errors == 1
