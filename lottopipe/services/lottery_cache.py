"""
LotteryCache - Domain facade over the cache, the draw source and the analyzer.

Each read derives its key from its parameters, serves a cache hit directly,
and on a miss runs acquisition through the retry executor, validates the
result, stores it with a shape-specific TTL and returns it. Concurrent misses
on one key share a single acquisition.

Failures are surfaced to the caller as raised; nothing stale or made up is
returned in their place.
"""

import asyncio
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger
from pydantic import TypeAdapter

from lottopipe.analysis import (
    FREQUENCY_TYPES,
    DrawAnalyzer,
    FrequencyReport,
    StatisticsReport,
)
from lottopipe.datasource.base import BaseDataSource
from lottopipe.services.cache import CacheManager
from lottopipe.services.deduplicator import RequestDeduplicator
from lottopipe.services.errors import (
    CircuitOpenError,
    InvalidQueryError,
    NoDataError,
    ServiceError,
    StructuralParseError,
    TransientSourceError,
    ValidationError,
)
from lottopipe.services.retry import SCRAPING_RETRY_CONFIG, RetryConfig, SleepFn, retry_async
from lottopipe.services.validator import check_freshness, clean_batch, quality_check, validate
from lottopipe.types import DrawResult

T = TypeVar("T")

_DRAW = TypeAdapter(DrawResult)
_DRAWS = TypeAdapter(list[DrawResult])
_STATISTICS = TypeAdapter(StatisticsReport)
_FREQUENCY = TypeAdapter(FrequencyReport)

HISTORY_MAX_COUNT = 100
RANGE_MAX_SPAN = 100
STATISTICS_ROUNDS = (10, 200)
FREQUENCY_ROUNDS = (5, 200)


class LotteryCacheKeys:
    """The only place cache keys are built."""

    PREFIX = "lottery"

    # Everything derived from the draw history; cleared when a new round appears
    DERIVED_PATTERN = rf"{PREFIX}:(history|statistics|frequency).*"

    @classmethod
    def latest(cls) -> str:
        return f"{cls.PREFIX}:latest"

    @classmethod
    def history(cls, count: int = 20) -> str:
        return f"{cls.PREFIX}:history:recent:{count}"

    @classmethod
    def history_range(cls, start: int, end: int) -> str:
        return f"{cls.PREFIX}:history:range:{start}-{end}"

    @classmethod
    def statistics(cls, rounds: int, include_analysis: bool) -> str:
        suffix = "with" if include_analysis else "without"
        return f"{cls.PREFIX}:statistics:{rounds}:{suffix}_analysis"

    @classmethod
    def frequency(cls, rounds: int, analysis_type: str) -> str:
        return f"{cls.PREFIX}:frequency:{rounds}:{analysis_type}"


class LotteryCacheTTL:
    LATEST = timedelta(minutes=30)
    HISTORY = timedelta(hours=1)
    STATISTICS = timedelta(hours=1)
    FREQUENCY = timedelta(minutes=45)


class LotteryCache:
    """
    Read-through cache for draw results and their analyses.

    Usage:
        lottery = LotteryCache(cache, source)
        latest = await lottery.get_latest()
        history = await lottery.get_history(20)
        stats = await lottery.get_statistics(100, include_analysis=True)
    """

    def __init__(
        self,
        cache: CacheManager,
        source: BaseDataSource,
        analyzer: DrawAnalyzer | None = None,
        deduplicator: RequestDeduplicator | None = None,
        retry_config: RetryConfig = SCRAPING_RETRY_CONFIG,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.cache = cache
        self.source = source
        self.analyzer = analyzer or DrawAnalyzer()
        self.deduplicator = deduplicator or RequestDeduplicator()
        self._retry_config = retry_config
        self._sleep = sleep
        self._known_round: int | None = None

    # ── Reads ────────────────────────────────────────────────────────────────

    async def get_latest(self) -> DrawResult:
        return await self._read_through(
            LotteryCacheKeys.latest(), _DRAW, self._load_latest, LotteryCacheTTL.LATEST
        )

    async def get_history(self, count: int = 20) -> list[DrawResult]:
        """The newest `count` draws, newest first."""
        if not 1 <= count <= HISTORY_MAX_COUNT:
            raise InvalidQueryError(f"count must be between 1 and {HISTORY_MAX_COUNT}, got {count}")
        return await self._recent_draws(count)

    async def get_history_range(self, start: int, end: int) -> list[DrawResult]:
        """
        Draws for rounds start..end that the source has data for, newest first.

        A range with no published draws yields an empty list.
        """
        if start < 1 or start > end:
            raise InvalidQueryError(f"invalid round range {start}-{end}")
        if end - start > RANGE_MAX_SPAN:
            raise InvalidQueryError(f"round range may span at most {RANGE_MAX_SPAN} rounds")

        return await self._read_through(
            LotteryCacheKeys.history_range(start, end),
            _DRAWS,
            lambda: self._load_draws(
                lambda: self.source.fetch_range(start, end),
                f"Draw range {start}-{end} fetch",
                required=False,
            ),
            LotteryCacheTTL.HISTORY,
        )

    async def get_history_quality(self, count: int = 20) -> dict[str, Any]:
        """Freshness and round-sequence completeness of the newest `count` draws."""
        draws = await self.get_history(count)
        return {"count": len(draws), **quality_check(draws)}

    async def get_statistics(self, rounds: int = 100, include_analysis: bool = False) -> StatisticsReport:
        low, high = STATISTICS_ROUNDS
        if not low <= rounds <= high:
            raise InvalidQueryError(f"rounds must be between {low} and {high}, got {rounds}")

        async def load() -> StatisticsReport:
            draws = await self._recent_draws(rounds)
            return self.analyzer.statistics(draws, include_analysis)

        return await self._read_through(
            LotteryCacheKeys.statistics(rounds, include_analysis),
            _STATISTICS,
            load,
            LotteryCacheTTL.STATISTICS,
        )

    async def get_frequency(self, rounds: int = 50, analysis_type: str = "recent") -> Any:
        """FrequencyAnalysis, or ComparativeAnalysis for enough comparative data."""
        low, high = FREQUENCY_ROUNDS
        if not low <= rounds <= high:
            raise InvalidQueryError(f"rounds must be between {low} and {high}, got {rounds}")
        if analysis_type not in FREQUENCY_TYPES:
            raise InvalidQueryError(
                f"analysis type must be one of {', '.join(FREQUENCY_TYPES)}, got '{analysis_type}'"
            )

        async def load() -> Any:
            draws = await self._recent_draws(self.analyzer.draws_needed(analysis_type, rounds))
            return self.analyzer.frequency(draws, analysis_type, rounds)

        return await self._read_through(
            LotteryCacheKeys.frequency(rounds, analysis_type),
            _FREQUENCY,
            load,
            LotteryCacheTTL.FREQUENCY,
        )

    # ── Writes ───────────────────────────────────────────────────────────────

    async def set_latest(self, draw: DrawResult) -> None:
        await self.cache.set(LotteryCacheKeys.latest(), validate(draw), LotteryCacheTTL.LATEST)

    async def set_history(self, draws: list[DrawResult], count: int = 20) -> None:
        await self.cache.set(
            LotteryCacheKeys.history(count), clean_batch(draws), LotteryCacheTTL.HISTORY
        )

    async def set_history_range(self, draws: list[DrawResult], start: int, end: int) -> None:
        await self.cache.set(
            LotteryCacheKeys.history_range(start, end), clean_batch(draws), LotteryCacheTTL.HISTORY
        )

    async def set_statistics(
        self, report: StatisticsReport, rounds: int, include_analysis: bool
    ) -> None:
        await self.cache.set(
            LotteryCacheKeys.statistics(rounds, include_analysis),
            report,
            LotteryCacheTTL.STATISTICS,
        )

    async def set_frequency(self, report: Any, rounds: int, analysis_type: str) -> None:
        await self.cache.set(
            LotteryCacheKeys.frequency(rounds, analysis_type), report, LotteryCacheTTL.FREQUENCY
        )

    # ── Invalidation and maintenance ─────────────────────────────────────────

    async def invalidate_by_round(self, new_round: int) -> int:
        """Drop the latest draw and everything derived from the history."""
        removed = int(await self.cache.invalidate(LotteryCacheKeys.latest()))
        removed += await self.cache.invalidate_pattern(LotteryCacheKeys.DERIVED_PATTERN)
        self._known_round = new_round
        logger.info(f"New round {new_round} detected: {removed} cache keys invalidated")
        return removed

    async def check_for_new_round(self) -> int | None:
        """
        Fetch the live latest draw and invalidate if its round is new.

        Returns:
            The new round number, or None when nothing changed
        """
        cached = await self.cache.get(LotteryCacheKeys.latest())
        known = _DRAW.validate_python(cached).round if cached is not None else self._known_round

        live = await self.deduplicator.dedupe(LotteryCacheKeys.latest(), self._load_latest)

        if known is not None and live.round > known:
            await self.invalidate_by_round(live.round)
            await self.set_latest(live)
            return live.round

        if known is None:
            logger.info(f"Round watcher baseline: round {live.round}")
        self._known_round = live.round
        await self.set_latest(live)
        return None

    async def invalidate_key(self, key: str) -> bool:
        return await self.cache.invalidate(key)

    async def invalidate_pattern(self, pattern: str) -> int:
        return await self.cache.invalidate_pattern(pattern)

    async def get_status(self) -> dict[str, Any]:
        stats = await self.cache.get_stats()
        keys = [k for k in await self.cache.keys() if k.startswith(f"{LotteryCacheKeys.PREFIX}:")]

        # Cached draw only; status never triggers an acquisition
        cached = await self.cache.get(LotteryCacheKeys.latest())
        latest = [_DRAW.validate_python(cached)] if cached is not None else []

        return {
            "cache": stats.to_dict(),
            "key_count": len(keys),
            "keys": keys,
            "freshness": asdict(check_freshness(latest)),
            "in_flight": self.deduplicator.get_stats().to_dict(),
            "source": self.source.get_status(),
        }

    async def warmup(self) -> dict[str, bool]:
        """
        Load the most requested reads into the cache.

        Failures are logged and reported per key; warmup never raises.
        """
        reads: dict[str, Callable[[], Awaitable[Any]]] = {
            LotteryCacheKeys.latest(): self.get_latest,
            LotteryCacheKeys.history(20): lambda: self.get_history(20),
            LotteryCacheKeys.statistics(50, True): lambda: self.get_statistics(50, True),
            LotteryCacheKeys.frequency(50, "recent"): lambda: self.get_frequency(50, "recent"),
        }

        logger.info("Cache warmup started")
        ready: dict[str, bool] = {}
        for key, read in reads.items():
            try:
                await read()
                ready[key] = True
            except ServiceError as e:
                logger.warning(f"Warmup failed for {key}: {e}")
                ready[key] = False

        logger.info(f"Cache warmup done: {sum(ready.values())}/{len(ready)} entries ready")
        return ready

    # ── Internals ────────────────────────────────────────────────────────────

    async def _read_through(
        self,
        key: str,
        adapter: TypeAdapter[T],
        load: Callable[[], Awaitable[T]],
        ttl: timedelta,
    ) -> T:
        cached = await self.cache.get(key)
        if cached is not None:
            return _detached(adapter, cached)

        async def load_and_store() -> T:
            data = await load()
            if isinstance(data, list) and not data:
                # Not cached: the rounds may still be published
                logger.info(f"No draws available for {key}, result not cached")
            else:
                await self.cache.set(key, data, ttl)
            return data

        # Every waiter gets its own copy of the shared result
        return _detached(adapter, await self.deduplicator.dedupe(key, load_and_store))

    async def _recent_draws(self, count: int) -> list[DrawResult]:
        return await self._read_through(
            LotteryCacheKeys.history(count),
            _DRAWS,
            lambda: self._load_draws(
                lambda: self.source.fetch_recent(count), f"Recent {count} draws fetch"
            ),
            LotteryCacheTTL.HISTORY,
        )

    async def _load_latest(self) -> DrawResult:
        candidate = await retry_async(
            self.source.fetch_latest, self._retry_config, "Latest draw fetch", self._sleep
        )
        return validate(candidate)

    async def _load_draws(
        self,
        fetch: Callable[[], Awaitable[list[dict[str, Any]]]],
        context: str,
        required: bool = True,
    ) -> list[DrawResult]:
        """Fetch and clean a batch; a required batch with no valid draw raises NoDataError."""
        candidates = await retry_async(fetch, self._retry_config, context, self._sleep)
        draws = clean_batch(candidates)
        if not draws and required:
            raise NoDataError(f"{context} produced no valid draws", self.source.service_id)
        return draws


def _detached(adapter: TypeAdapter[T], data: Any) -> T:
    """A validated copy of data that shares no mutable state with the cached value."""
    return adapter.validate_python(adapter.dump_python(adapter.validate_python(data)))


@dataclass
class ReadResult(Generic[T]):
    """Outcome of a facade read, for callers that render rather than raise."""

    success: bool
    data: T | None = None
    error: str | None = None  # machine-readable reason
    message: str | None = None  # human-readable reason

    def to_dict(self) -> dict[str, Any]:
        data = self.data
        if hasattr(data, "model_dump"):
            data = data.model_dump(mode="json")
        elif isinstance(data, list):
            data = [d.model_dump(mode="json") if hasattr(d, "model_dump") else d for d in data]
        return {
            "success": self.success,
            "data": data,
            "error": self.error,
            "message": self.message,
        }


_FAILURE_MESSAGES: list[tuple[type[Exception], str, str]] = [
    (InvalidQueryError, "invalid_query", "Invalid request"),
    (NoDataError, "no_data", "No valid draw data could be found"),
    (StructuralParseError, "source_changed", "The draw source returned an unexpected page"),
    (ValidationError, "invalid_data", "The draw source returned invalid data"),
    (TransientSourceError, "source_unreachable", "The draw source could not be reached"),
]


async def read_result(read: Awaitable[T]) -> ReadResult[T]:
    """
    Await a facade read and report the outcome instead of raising.

    An open circuit is reported as 'temporarily_unavailable' so callers can
    show a distinct retry-later state.
    """
    try:
        return ReadResult(success=True, data=await read)

    except CircuitOpenError as e:
        return ReadResult(
            success=False,
            error="temporarily_unavailable",
            message=(
                "The draw source is temporarily unavailable, "
                f"try again in {max(e.reset_after_seconds, 1):.0f}s"
            ),
        )

    except ServiceError as e:
        for error_type, code, message in _FAILURE_MESSAGES:
            if isinstance(e, error_type):
                return ReadResult(success=False, error=code, message=f"{message}: {e}")
        return ReadResult(success=False, error="service_error", message=str(e))
