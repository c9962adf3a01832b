from datetime import timedelta

import pytest

from lottopipe.services.errors import TransientSourceError
from lottopipe.services.lottery_cache import LotteryCache, LotteryCacheKeys
from lottopipe.services.retry import RetryConfig
from lottopipe.services.scheduler import CacheScheduler


class ExplodingCache:
    async def cleanup_expired(self):
        raise RuntimeError("sweep failed")


@pytest.fixture
def lottery(memory_cache, source, sleep):
    return LotteryCache(memory_cache, source, retry_config=RetryConfig(max_attempts=1), sleep=sleep)


async def test_start_registers_jobs(memory_cache, lottery):
    scheduler = CacheScheduler(memory_cache, lottery, cleanup_minutes=5, round_check_minutes=30)

    scheduler.start()
    try:
        assert scheduler.is_running()
        cleanup = scheduler.scheduler.get_job("cache_cleanup")
        round_check = scheduler.scheduler.get_job("round_check")
        assert cleanup.trigger.interval == timedelta(minutes=5)
        assert round_check.trigger.interval == timedelta(minutes=30)
    finally:
        scheduler.stop()

    assert not scheduler.is_running()


async def test_round_check_requires_lottery(memory_cache):
    scheduler = CacheScheduler(memory_cache)

    scheduler.start()
    try:
        assert scheduler.scheduler.get_job("round_check") is None
        assert await scheduler.round_check_job() is None
    finally:
        scheduler.stop()


async def test_run_now(memory_cache, lottery, source, clock):
    await memory_cache.set("stale", 1, ttl=timedelta(minutes=1))
    await lottery.get_history(5)
    clock.advance(minutes=2)

    assert await CacheScheduler(memory_cache, lottery).run_now() == {
        "expired_removed": 1,
        "new_round": None,
    }

    source.latest_round = 1101
    result = await CacheScheduler(memory_cache, lottery).run_now()

    assert result["new_round"] == 1101
    assert LotteryCacheKeys.history(5) not in await memory_cache.keys()


async def test_job_failures_are_contained(lottery, source):
    source.failures = [TransientSourceError("network error: reset")]
    scheduler = CacheScheduler(ExplodingCache(), lottery)

    assert await scheduler.cleanup_job() == 0
    assert await scheduler.round_check_job() is None
