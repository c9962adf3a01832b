"""
SQLite-backed storage for the durable local cache tier.
"""

from lottopipe.datastore.engine import CacheDatabase
from lottopipe.datastore.models import Base, CacheEntryDB
from lottopipe.datastore.repositories import CacheEntryRepository

__all__ = ["Base", "CacheDatabase", "CacheEntryDB", "CacheEntryRepository"]
