"""
Database models for the local cache tier.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models."""

    pass


class CacheEntryDB(Base):
    """One cached value, serialized as JSON."""

    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(500), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ttl_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(50), default="local")

    def __repr__(self) -> str:
        return f"<CacheEntry(key={self.key}, created_at={self.created_at})>"
