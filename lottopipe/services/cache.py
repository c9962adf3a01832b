"""
CacheManager - Read-through, write-through cache over ordered tiers.

Features:
- Per-entry TTL, checked on every read with lazy eviction
- Backfill: a hit in a slower tier is copied into every faster tier
- Durable tier failures are logged and never fail a read or write
- Regex invalidation across all tiers
- Hit/miss statistics and approximate memory footprint
"""

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable

from loguru import logger

from lottopipe.services.errors import CacheStorageError
from lottopipe.services.retry import CACHE_RETRY_CONFIG, retry_async
from lottopipe.services.storage import (
    CacheEntry,
    CacheLevel,
    CacheStore,
    EntryMetadata,
    StorageBackend,
    serialize,
)

DEFAULT_TTLS: dict[CacheLevel, timedelta] = {
    CacheLevel.MEMORY: timedelta(minutes=5),
    CacheLevel.LOCAL: timedelta(hours=1),
    CacheLevel.PERSISTENT: timedelta(hours=24),
}


class CacheManager:
    """
    Multi-tier cache manager.

    Usage:
        cache = CacheManager(StorageBackend.memory_only())
        await cache.initialize()

        data = await cache.get("lottery:latest")
        if data is None:
            data = await load()
            await cache.set("lottery:latest", data, ttl=timedelta(minutes=30))
    """

    def __init__(
        self,
        backend: StorageBackend,
        default_ttls: dict[CacheLevel, timedelta] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        debug: bool = False,
    ):
        self._backend = backend
        self._default_ttls = {**DEFAULT_TTLS, **(default_ttls or {})}
        self._clock = clock
        self._debug = debug
        self._stats = CacheStats(last_cleanup=clock())

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    async def initialize(self) -> None:
        await self._backend.initialize()
        logger.info(
            f"Cache ready: backend={self._backend.name}, "
            f"tiers={[store.name for store in self._backend.stores]}"
        )

    async def get(self, key: str) -> Any | None:
        """
        Look up a key tier by tier.

        Returns the cached value, or None on a miss. On a hit below the
        fastest tier, the entry is copied upward with its original
        timestamp and TTL so it cannot outlive them.
        """
        now = self._clock()
        self._stats.total_requests += 1

        for index, store in enumerate(self._backend.stores):
            entry = await self._read(store, key, now)
            if entry is None:
                continue

            for faster in self._backend.stores[:index]:
                await self._write(faster, entry.copy_to(faster.level))

            self._stats.hits += 1
            self._stats.tier_hits[store.name] = self._stats.tier_hits.get(store.name, 0) + 1
            self._log(f"HIT ({store.name}): {key}")
            return entry.data

        self._stats.misses += 1
        self._log(f"MISS: {key}")
        return None

    async def set(self, key: str, data: Any, ttl: timedelta | None = None) -> None:
        """
        Store a value in every tier.

        Args:
            key: Cache key
            data: Value to cache (must be JSON-serializable via pydantic)
            ttl: Time to live; each tier's default is used when omitted
        """
        now = self._clock()
        size = len(serialize(data))

        for store in self._backend.stores:
            entry = CacheEntry(
                data=data,
                timestamp=now,
                ttl=ttl if ttl is not None else self._default_ttls[store.level],
                level=store.level,
                key=key,
                metadata=EntryMetadata(source=store.name, last_accessed=now),
                size=size,
            )
            await self._write(store, entry)

        self._log(f"SET: {key} ({size} bytes)")

    async def invalidate(self, key: str) -> bool:
        """Delete a key from every tier."""
        removed = False
        for store in self._backend.stores:
            try:
                removed = await store.delete(key) or removed
            except Exception as e:
                self._storage_failure("delete", store, key, e)
        if removed:
            logger.info(f"Cache invalidated: {key}")
        return removed

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a regular expression, in every tier.

        Uses re.search, so the pattern may match anywhere in the key.

        Returns:
            Number of distinct keys removed
        """
        regex = re.compile(pattern)
        removed: set[str] = set()

        for store in self._backend.stores:
            try:
                matches = [k for k in await store.keys() if regex.search(k)]
                for key in matches:
                    if await store.delete(key):
                        removed.add(key)
            except Exception as e:
                self._storage_failure("invalidate", store, pattern, e)

        if removed:
            logger.info(f"Cache invalidated {len(removed)} keys matching '{pattern}'")
        return len(removed)

    async def clear(self) -> None:
        for store in self._backend.stores:
            try:
                count = await store.clear()
                self._log(f"CLEAR ({store.name}): {count} entries removed")
            except Exception as e:
                self._storage_failure("clear", store, "*", e)

    async def cleanup_expired(self, include_unswept: bool = False) -> int:
        """
        Remove expired entries from the swept tiers.

        Tiers that expire lazily on read are included only when asked.
        Returns the number of entries removed.
        """
        now = self._clock()
        removed = 0
        for store in self._backend.stores:
            if not (store.swept or include_unswept):
                continue
            try:
                removed += await store.sweep(now)
            except Exception as e:
                self._storage_failure("sweep", store, "*", e)

        self._stats.last_cleanup = now
        if removed:
            logger.info(f"Cache cleanup: {removed} expired entries removed")
        return removed

    async def keys(self) -> list[str]:
        """Union of keys across all tiers, sorted."""
        found: set[str] = set()
        for store in self._backend.stores:
            try:
                found.update(await store.keys())
            except Exception as e:
                self._storage_failure("list", store, "*", e)
        return sorted(found)

    async def get_stats(self) -> "CacheStats":
        memory = self._backend.memory
        if memory is not None:
            self._stats.memory_usage = await memory.memory_usage()
            self._stats.size = len(await memory.keys())
        return replace(self._stats, tier_hits=dict(self._stats.tier_hits))

    async def close(self) -> None:
        await self._backend.close()

    async def _read(
        self, store: CacheStore, key: str, now: datetime
    ) -> CacheEntry[Any] | None:
        try:
            if store.level == CacheLevel.MEMORY:
                return await store.get(key, now)
            return await retry_async(
                lambda: store.get(key, now), CACHE_RETRY_CONFIG, f"Cache read ({store.name})"
            )
        except Exception as e:
            self._storage_failure("read", store, key, e)
            return None

    async def _write(self, store: CacheStore, entry: CacheEntry[Any]) -> None:
        if store.level == CacheLevel.MEMORY:
            await store.set(entry)
            return
        try:
            await retry_async(
                lambda: store.set(entry), CACHE_RETRY_CONFIG, f"Cache write ({store.name})"
            )
        except Exception as e:
            self._storage_failure("write", store, entry.key, e)

    def _storage_failure(
        self, action: str, store: CacheStore, key: str, error: Exception
    ) -> None:
        failure = CacheStorageError(f"{action} failed in {store.name} tier for '{key}': {error}")
        self._stats.storage_errors += 1
        logger.warning(str(failure))

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[CacheManager] {message}")


@dataclass
class CacheStats:
    """Counters for one CacheManager since it was created."""

    hits: int = 0
    misses: int = 0
    total_requests: int = 0
    memory_usage: int = 0  # bytes held by the memory tier
    size: int = 0  # entries in the memory tier
    storage_errors: int = 0
    last_cleanup: datetime | None = None
    tier_hits: dict[str, int] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "total_requests": self.total_requests,
            "hit_rate": f"{self.hit_rate:.2%}",
            "memory_usage_kb": round(self.memory_usage / 1024, 2),
            "size": self.size,
            "storage_errors": self.storage_errors,
            "tier_hits": dict(self.tier_hits),
            "last_cleanup": self.last_cleanup.isoformat() if self.last_cleanup else None,
        }
