"""Shared fixtures: simulated clock, fake draw source, fake page transport."""

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from lottopipe.datasource.base import BaseDataSource
from lottopipe.datasource.transport import PageSession, PageTransport
from lottopipe.services.cache import CacheManager
from lottopipe.services.errors import TransientSourceError
from lottopipe.services.storage import StorageBackend

FIXTURES = Path(__file__).parent / "fixtures"

FIRST_DRAW_DATE = date(2002, 12, 7)


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def make_candidate(
    round_no: int,
    numbers: list[int] | None = None,
    bonus: int | None = None,
    draw_date: str | None = None,
) -> dict[str, Any]:
    """A valid raw candidate for a round, deterministic per round."""
    base = round_no % 39
    return {
        "round": round_no,
        "date": draw_date or (FIRST_DRAW_DATE + timedelta(weeks=round_no - 1)).isoformat(),
        "numbers": numbers if numbers is not None else [base + i for i in range(1, 7)],
        "bonus": bonus if bonus is not None else base + 7,
        "prize": {
            tier: {"amount": 10_000 * (6 - tier), "winners": tier} for tier in range(1, 6)
        },
    }


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 10, 12, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Async sleep replacement that records delays and returns at once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeSource(BaseDataSource):
    """
    In-memory draw source.

    `failures` are raised, one per call, before any data is returned.
    `gate`, when set, holds every fetch until the event is set.
    """

    def __init__(self, latest_round: int = 1100):
        self.latest_round = latest_round
        self.overrides: dict[int, dict[str, Any]] = {}
        self.failures: list[Exception] = []
        self.gate: asyncio.Event | None = None
        self.calls = {"latest": 0, "range": 0, "recent": 0}

    @property
    def service_id(self) -> str:
        return "fake"

    async def _before(self, kind: str) -> None:
        self.calls[kind] += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)

    def _candidate(self, round_no: int) -> dict[str, Any]:
        return self.overrides.get(round_no) or make_candidate(round_no)

    async def fetch_latest(self) -> dict[str, Any]:
        await self._before("latest")
        return self._candidate(self.latest_round)

    async def fetch_range(self, start: int, end: int) -> list[dict[str, Any]]:
        await self._before("range")
        return [self._candidate(r) for r in range(start, min(end, self.latest_round) + 1)]

    async def fetch_recent(self, count: int) -> list[dict[str, Any]]:
        await self._before("recent")
        start = max(1, self.latest_round - count + 1)
        return [self._candidate(r) for r in range(start, self.latest_round + 1)]

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


class FakeSession(PageSession):
    def __init__(self, transport: "FakeTransport"):
        self._transport = transport

    async def fetch(self, url: str, timeout: float) -> str:
        self._transport.fetched.append(url)
        page = self._transport.pages.get(url, self._transport.default)
        if isinstance(page, Exception):
            raise page
        if page is None:
            raise TransientSourceError(f"network error: no page for {url}")
        return page


class FakeTransport(PageTransport):
    """Serves canned pages by URL and counts opened and closed sessions."""

    def __init__(self, pages: dict[str, Any] | None = None, default: Any = None):
        self.pages: dict[str, Any] = pages or {}
        self.default = default
        self.fetched: list[str] = []
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def session(self):
        self.opened += 1
        try:
            yield FakeSession(self)
        finally:
            self.closed += 1


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
async def memory_cache(clock):
    cache = CacheManager(StorageBackend.memory_only(), clock=clock)
    await cache.initialize()
    yield cache
    await cache.close()


@pytest.fixture
async def durable_cache(clock, tmp_path):
    backend = StorageBackend.durable(
        f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}", tmp_path / "files"
    )
    cache = CacheManager(backend, clock=clock)
    await cache.initialize()
    yield cache
    await cache.close()
