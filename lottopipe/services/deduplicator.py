"""
RequestDeduplicator - At most one in-flight acquisition per cache key.

When several readers miss the same cache key at once, the first one starts
the acquisition and the rest await the same task. Every waiter receives the
same result or the same exception.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class DeduplicatorStats:
    started: int = 0  # loads actually executed
    coalesced: int = 0  # callers that joined a running load
    in_flight: int = 0

    @property
    def coalesce_rate(self) -> float:
        calls = self.started + self.coalesced
        return self.coalesced / calls if calls else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "started": self.started,
            "coalesced": self.coalesced,
            "in_flight": self.in_flight,
            "coalesce_rate": f"{self.coalesce_rate:.2%}",
        }


class RequestDeduplicator:
    """
    Coalesces concurrent async loads keyed by cache key.

    Usage:
        dedup = RequestDeduplicator()
        draws = await dedup.dedupe("lottery:latest", load_latest)
    """

    def __init__(self, debug: bool = False):
        self._loads: dict[str, asyncio.Task[Any]] = {}
        self._guard = asyncio.Lock()
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(self, key: str, load_fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run load_fn unless a load for the same key is already running.

        The load runs in its own task, so a waiter that gives up does not
        cancel the acquisition for the others.
        """
        async with self._guard:
            load = self._loads.get(key)
            if load is None:
                load = asyncio.create_task(self._load_then_forget(key, load_fn))
                self._loads[key] = load
                self._stats.started += 1
                self._log(f"load started for {key}")
            else:
                self._stats.coalesced += 1
                self._log(f"joined running load for {key}")

        return await asyncio.shield(load)

    async def _load_then_forget(self, key: str, load_fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await load_fn()
        finally:
            async with self._guard:
                # A cancelled load may already have been replaced by a newer one
                if self._loads.get(key) is asyncio.current_task():
                    del self._loads[key]
            self._log(f"load finished for {key}")

    async def cancel_all(self) -> int:
        """Cancel every running load. Returns how many were cancelled."""
        async with self._guard:
            loads = list(self._loads.values())
            self._loads.clear()

        for load in loads:
            load.cancel()
        if loads:
            logger.info(f"Cancelled {len(loads)} in-flight loads")
        return len(loads)

    def get_in_flight_keys(self) -> list[str]:
        return list(self._loads)

    def get_stats(self) -> DeduplicatorStats:
        self._stats.in_flight = len(self._loads)
        return self._stats

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")
