"""
Background jobs: cache sweeping and new-round detection.

Uses APScheduler's AsyncIOScheduler, so jobs run on the application's event
loop. Job failures are logged and never stop the scheduler.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from lottopipe.services.cache import CacheManager
from lottopipe.services.errors import ServiceError
from lottopipe.services.lottery_cache import LotteryCache


class CacheScheduler:
    """
    Periodic cache maintenance.

    Usage:
        scheduler = CacheScheduler(cache, lottery, cleanup_minutes=10, round_check_minutes=60)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        cache: CacheManager,
        lottery: LotteryCache | None = None,
        cleanup_minutes: int = 10,
        round_check_minutes: int = 60,
    ):
        self.scheduler = AsyncIOScheduler()
        self.cache = cache
        self.lottery = lottery
        self.cleanup_minutes = cleanup_minutes
        self.round_check_minutes = round_check_minutes
        self._is_running = False

    async def cleanup_job(self) -> int:
        """Sweep expired entries from the swept tiers."""
        try:
            return await self.cache.cleanup_expired()
        except Exception as e:
            logger.error(f"Error in scheduled cache cleanup: {e}")
            return 0

    async def round_check_job(self) -> int | None:
        """Invalidate derived entries when the source publishes a new round."""
        if self.lottery is None:
            return None
        try:
            new_round = await self.lottery.check_for_new_round()
        except ServiceError as e:
            logger.warning(f"Round check failed: {e}")
            return None
        except Exception as e:
            logger.error(f"Error in scheduled round check: {e}")
            return None

        if new_round is not None:
            logger.info(f"Round check: new round {new_round}")
        return new_round

    def start(self) -> None:
        if self._is_running:
            logger.warning("Cache scheduler is already running")
            return

        self.scheduler.add_job(
            self.cleanup_job,
            trigger="interval",
            minutes=self.cleanup_minutes,
            id="cache_cleanup",
            name="Cache Cleanup",
            replace_existing=True,
        )
        logger.info(f"Cache cleanup job: every {self.cleanup_minutes} min")

        if self.lottery is not None:
            self.scheduler.add_job(
                self.round_check_job,
                trigger="interval",
                minutes=self.round_check_minutes,
                id="round_check",
                name="New Round Check",
                replace_existing=True,
            )
            logger.info(f"Round check job: every {self.round_check_minutes} min")

        self.scheduler.start()
        self._is_running = True
        logger.info("Cache scheduler started")

    def stop(self) -> None:
        if not self._is_running:
            logger.warning("Cache scheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Cache scheduler stopped")

    def is_running(self) -> bool:
        return self._is_running

    async def run_now(self) -> dict[str, int | None]:
        """Run every job once (manual trigger)."""
        logger.info("Manual cache maintenance triggered")
        return {
            "expired_removed": await self.cleanup_job(),
            "new_round": await self.round_check_job(),
        }
