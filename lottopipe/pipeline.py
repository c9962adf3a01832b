"""
Composition root: builds the acquisition and caching pipeline from settings.
"""

from dataclasses import dataclass
from datetime import timedelta

from loguru import logger

from lottopipe.analysis import DrawAnalyzer
from lottopipe.datasource import DHLotterySource, DrawPageExtractor, create_transport
from lottopipe.services.cache import CacheManager
from lottopipe.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from lottopipe.services.deduplicator import RequestDeduplicator
from lottopipe.services.lottery_cache import LotteryCache
from lottopipe.services.scheduler import CacheScheduler
from lottopipe.services.storage import StorageBackend
from lottopipe.settings import Settings, global_settings


@dataclass
class Pipeline:
    """Every long-lived component, wired together."""

    cache: CacheManager
    source: DHLotterySource
    lottery: LotteryCache
    scheduler: CacheScheduler

    async def start(self, warmup: bool = False) -> None:
        await self.cache.initialize()
        self.scheduler.start()
        if warmup:
            await self.lottery.warmup()

    async def close(self) -> None:
        if self.scheduler.is_running():
            self.scheduler.stop()
        await self.lottery.deduplicator.cancel_all()
        await self.cache.close()
        logger.info("Pipeline closed")


def build_backend(settings: Settings) -> StorageBackend:
    if settings.cache_backend == "memory":
        return StorageBackend.memory_only()
    if settings.cache_backend == "durable":
        return StorageBackend.durable(settings.cache_database_url, settings.cache_directory)
    raise ValueError(f"Unknown cache backend: {settings.cache_backend}")


def build_pipeline(settings: Settings | None = None) -> Pipeline:
    """Construct the pipeline. Call `await pipeline.start()` before use."""
    settings = settings or global_settings

    cache = CacheManager(build_backend(settings), debug=settings.cache_debug)

    breaker = CircuitBreaker(
        "dhlottery",
        CircuitBreakerConfig(
            failure_threshold=settings.circuit_failure_threshold,
            recovery_timeout=timedelta(seconds=settings.circuit_recovery_timeout),
        ),
    )
    source = DHLotterySource(
        transport=create_transport(settings.scraper_transport),
        extractor=DrawPageExtractor(),
        breaker=breaker,
        base_url=settings.lottery_base_url,
        page_timeout=settings.scraper_page_timeout,
        round_timeout=settings.scraper_round_timeout,
        request_delay=settings.scraper_request_delay,
    )

    lottery = LotteryCache(
        cache,
        source,
        analyzer=DrawAnalyzer(),
        deduplicator=RequestDeduplicator(debug=settings.cache_debug),
    )

    scheduler = CacheScheduler(
        cache,
        lottery,
        cleanup_minutes=settings.cache_cleanup_interval_minutes,
        round_check_minutes=settings.round_check_interval_minutes,
    )

    logger.info(
        f"Pipeline built: backend={settings.cache_backend}, "
        f"transport={settings.scraper_transport}, source={settings.lottery_base_url}"
    )
    return Pipeline(cache=cache, source=source, lottery=lottery, scheduler=scheduler)
