"""
Cache tiers and the storage backend that bundles them.

Tiers, fastest first:
- MemoryStore: in-process dict guarded by an asyncio.Lock
- SqliteStore: durable local store (SQLAlchemy + aiosqlite)
- FileStore: one JSON document per key under a base directory

Every store applies the same TTL rule on read: an entry older than its TTL
is deleted and reported as a miss.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import IntEnum
from pathlib import Path
from typing import Any, Generic, TypeVar
from urllib.parse import quote, unquote

from loguru import logger
from pydantic_core import to_json

from lottopipe.datastore import CacheDatabase, CacheEntryRepository

T = TypeVar("T")


class CacheLevel(IntEnum):
    """Cache tiers ordered from fastest to most durable."""

    MEMORY = 1
    LOCAL = 2
    PERSISTENT = 3


@dataclass
class EntryMetadata:
    source: str
    hit_count: int = 0
    last_accessed: datetime | None = None


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    timestamp: datetime
    ttl: timedelta
    level: CacheLevel
    key: str
    metadata: EntryMetadata
    size: int = 0  # bytes of serialized data

    def is_expired(self, now: datetime) -> bool:
        return now - self.timestamp > self.ttl

    def copy_to(self, level: CacheLevel) -> "CacheEntry[T]":
        """Same data, timestamp and TTL, owned by another tier."""
        return replace(
            self,
            level=level,
            metadata=EntryMetadata(source=level.name.lower()),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "data": json.loads(serialize(self.data)),
            "timestamp": self.timestamp.isoformat(),
            "ttl": self.ttl.total_seconds(),
            "level": int(self.level),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any], level: CacheLevel) -> "CacheEntry[Any]":
        data = record["data"]
        return cls(
            data=data,
            timestamp=datetime.fromisoformat(record["timestamp"]),
            ttl=timedelta(seconds=float(record["ttl"])),
            level=level,
            key=record["key"],
            metadata=EntryMetadata(source=level.name.lower()),
            size=len(serialize(data)),
        )


def serialize(data: Any) -> str:
    """JSON text for any value the pipeline caches (models, dates, tuples)."""
    return to_json(data).decode()


class CacheStore(ABC):
    """One cache tier."""

    level: CacheLevel
    # Whether the periodic sweep cleans this tier; others expire lazily on read
    swept: bool = True

    async def initialize(self) -> None:
        return None

    @abstractmethod
    async def get(self, key: str, now: datetime) -> CacheEntry[Any] | None:
        """Fresh entry for key, or None. Expired entries are deleted."""
        ...

    @abstractmethod
    async def set(self, entry: CacheEntry[Any]) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abstractmethod
    async def keys(self) -> list[str]: ...

    @abstractmethod
    async def sweep(self, now: datetime) -> int:
        """Remove every expired entry. Returns the number removed."""
        ...

    @abstractmethod
    async def clear(self) -> int: ...

    async def close(self) -> None:
        return None

    @property
    def name(self) -> str:
        return self.level.name.lower()


class MemoryStore(CacheStore):
    """In-process tier. All mutations and sweeps hold the same lock."""

    level = CacheLevel.MEMORY

    def __init__(self):
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str, now: datetime) -> CacheEntry[Any] | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            entry.metadata.hit_count += 1
            entry.metadata.last_accessed = now
            return entry

    async def set(self, entry: CacheEntry[Any]) -> None:
        async with self._lock:
            self._entries[entry.key] = entry

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def keys(self) -> list[str]:
        async with self._lock:
            return list(self._entries)

    async def sweep(self, now: datetime) -> int:
        async with self._lock:
            expired = [k for k, v in self._entries.items() if v.is_expired(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    async def memory_usage(self) -> int:
        async with self._lock:
            return sum(entry.size for entry in self._entries.values())


class SqliteStore(CacheStore):
    """Durable local tier backed by a SQLite table."""

    level = CacheLevel.LOCAL

    def __init__(self, database: CacheDatabase):
        self._db = database

    async def initialize(self) -> None:
        await self._db.init()

    async def get(self, key: str, now: datetime) -> CacheEntry[Any] | None:
        async with self._db.session() as session:
            repo = CacheEntryRepository(session)
            row = await repo.get(key)
            if row is None:
                return None

            ttl = timedelta(seconds=row.ttl_seconds)
            if now - row.created_at > ttl:
                await repo.delete(key)
                return None

            data = json.loads(row.payload)
            return CacheEntry(
                data=data,
                timestamp=row.created_at,
                ttl=ttl,
                level=self.level,
                key=key,
                metadata=EntryMetadata(source=row.source, last_accessed=now),
                size=len(row.payload),
            )

    async def set(self, entry: CacheEntry[Any]) -> None:
        async with self._db.session() as session:
            await CacheEntryRepository(session).upsert(
                key=entry.key,
                payload=serialize(entry.data),
                created_at=entry.timestamp,
                ttl=entry.ttl,
                level=int(self.level),
                source=entry.metadata.source,
            )

    async def delete(self, key: str) -> bool:
        async with self._db.session() as session:
            return await CacheEntryRepository(session).delete(key)

    async def keys(self) -> list[str]:
        async with self._db.session() as session:
            return await CacheEntryRepository(session).list_keys()

    async def sweep(self, now: datetime) -> int:
        async with self._db.session() as session:
            repo = CacheEntryRepository(session)
            expired = await repo.find_expired_keys(now)
            return await repo.delete_many(expired)

    async def clear(self) -> int:
        async with self._db.session() as session:
            return await CacheEntryRepository(session).delete_all()

    async def close(self) -> None:
        await self._db.close()


class FileStore(CacheStore):
    """
    Durable server-side tier: one self-describing JSON file per key.

    A missing file is a miss. Expiry is only checked when a key is read.
    """

    level = CacheLevel.PERSISTENT
    swept = False

    SUFFIX = ".json"

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    async def initialize(self) -> None:
        await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)

    async def get(self, key: str, now: datetime) -> CacheEntry[Any] | None:
        path = self.path_for(key)
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            entry = CacheEntry.from_record(json.loads(text), self.level)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable cache file {path.name}: {e}")
            await self.delete(key)
            return None

        if entry.is_expired(now):
            await self.delete(key)
            return None
        entry.metadata.last_accessed = now
        return entry

    async def set(self, entry: CacheEntry[Any]) -> None:
        path = self.path_for(entry.key)
        text = json.dumps(entry.to_record(), ensure_ascii=False, indent=2)
        tmp_path = path.with_suffix(".tmp")

        def write() -> None:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(text, encoding="utf-8")
            tmp_path.replace(path)

        await asyncio.to_thread(write)

    async def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(path.unlink)
            return True
        except FileNotFoundError:
            return False

    async def keys(self) -> list[str]:
        def scan() -> list[str]:
            if not self.directory.exists():
                return []
            return [
                unquote(p.name[: -len(self.SUFFIX)])
                for p in self.directory.glob(f"*{self.SUFFIX}")
            ]

        return await asyncio.to_thread(scan)

    async def sweep(self, now: datetime) -> int:
        removed = 0
        for key in await self.keys():
            if await self.get(key, now) is None:
                removed += 1
        return removed

    async def clear(self) -> int:
        removed = 0
        for key in await self.keys():
            if await self.delete(key):
                removed += 1
        return removed


@dataclass
class StorageBackend:
    """
    The set of tiers a CacheManager writes to, chosen once at construction.

    Usage:
        backend = StorageBackend.memory_only()
        backend = StorageBackend.durable("sqlite+aiosqlite:///./data/cache.db", "./data/cache")
    """

    name: str
    stores: list[CacheStore] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.stores.sort(key=lambda store: store.level)

    @classmethod
    def memory_only(cls) -> "StorageBackend":
        return cls(name="memory", stores=[MemoryStore()])

    @classmethod
    def durable(cls, database_url: str, directory: str | Path) -> "StorageBackend":
        return cls(
            name="durable",
            stores=[
                MemoryStore(),
                SqliteStore(CacheDatabase(database_url)),
                FileStore(directory),
            ],
        )

    @property
    def memory(self) -> MemoryStore | None:
        for store in self.stores:
            if isinstance(store, MemoryStore):
                return store
        return None

    async def initialize(self) -> None:
        for store in self.stores:
            await store.initialize()

    async def close(self) -> None:
        for store in self.stores:
            await store.close()
