"""
Base data source interface.
"""

from abc import ABC, abstractmethod
from typing import Any


class BaseDataSource(ABC):
    """
    Abstract base class for draw sources.

    Sources return unvalidated candidates (plain dicts); validation happens
    once, in the caller, over the whole batch.
    """

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Unique identifier for this data source."""
        ...

    @abstractmethod
    async def fetch_latest(self) -> dict[str, Any]:
        """Candidate for the most recent round."""
        ...

    @abstractmethod
    async def fetch_range(self, start: int, end: int) -> list[dict[str, Any]]:
        """Candidates for rounds start..end, ascending. Rounds without data are skipped."""
        ...

    @abstractmethod
    async def fetch_recent(self, count: int) -> list[dict[str, Any]]:
        """Candidates for the latest `count` rounds, ascending."""
        ...

    def get_status(self) -> dict[str, Any]:
        return {"service_id": self.service_id}
