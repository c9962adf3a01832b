"""
Repository layer for cache rows.
"""

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lottopipe.datastore.models import CacheEntryDB


class CacheEntryRepository:
    """Data access for the cache_entries table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, key: str) -> CacheEntryDB | None:
        result = await self.session.execute(
            select(CacheEntryDB).where(CacheEntryDB.key == key)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        key: str,
        payload: str,
        created_at: datetime,
        ttl: timedelta,
        level: int,
        source: str,
    ) -> None:
        row = await self.get(key)

        if row:
            row.payload = payload
            row.created_at = created_at
            row.ttl_seconds = ttl.total_seconds()
            row.level = level
            row.source = source
        else:
            row = CacheEntryDB(
                key=key,
                payload=payload,
                created_at=created_at,
                ttl_seconds=ttl.total_seconds(),
                level=level,
                source=source,
            )
            self.session.add(row)
        await self.session.flush()

    async def delete(self, key: str) -> bool:
        result = await self.session.execute(
            delete(CacheEntryDB).where(CacheEntryDB.key == key)
        )
        return bool(result.rowcount)

    async def delete_many(self, keys: list[str]) -> int:
        if not keys:
            return 0
        result = await self.session.execute(
            delete(CacheEntryDB).where(CacheEntryDB.key.in_(keys))
        )
        return result.rowcount or 0

    async def delete_all(self) -> int:
        result = await self.session.execute(delete(CacheEntryDB))
        return result.rowcount or 0

    async def list_keys(self) -> list[str]:
        result = await self.session.execute(select(CacheEntryDB.key))
        return list(result.scalars().all())

    async def find_expired_keys(self, now: datetime) -> list[str]:
        """Keys whose age exceeds their TTL."""
        result = await self.session.execute(
            select(CacheEntryDB.key, CacheEntryDB.created_at, CacheEntryDB.ttl_seconds)
        )
        expired = [
            key
            for key, created_at, ttl_seconds in result.all()
            if now - created_at > timedelta(seconds=ttl_seconds)
        ]
        if expired:
            logger.debug(f"Found {len(expired)} expired cache rows")
        return expired
