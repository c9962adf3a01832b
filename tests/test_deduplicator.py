import asyncio

import pytest

from lottopipe.services.deduplicator import RequestDeduplicator


class GatedLoad:
    def __init__(self, result="draws", error: Exception | None = None):
        self.result = result
        self.error = error
        self.gate = asyncio.Event()
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


async def test_concurrent_callers_share_one_load():
    dedup = RequestDeduplicator()
    load = GatedLoad()

    waiters = [asyncio.create_task(dedup.dedupe("lottery:latest", load)) for _ in range(3)]
    await settle()
    assert dedup.get_in_flight_keys() == ["lottery:latest"]

    load.gate.set()

    assert await asyncio.gather(*waiters) == ["draws"] * 3
    assert load.calls == 1
    assert dedup.get_in_flight_keys() == []

    stats = dedup.get_stats()
    assert stats.started == 1
    assert stats.coalesced == 2
    assert stats.to_dict()["coalesce_rate"] == "66.67%"


async def test_different_keys_load_separately():
    dedup = RequestDeduplicator()
    first, second = GatedLoad("a"), GatedLoad("b")
    first.gate.set()
    second.gate.set()

    results = await asyncio.gather(
        dedup.dedupe("lottery:history:recent:20", first),
        dedup.dedupe("lottery:history:recent:50", second),
    )

    assert results == ["a", "b"]
    assert first.calls == second.calls == 1


async def test_failure_reaches_every_waiter_and_clears_key():
    dedup = RequestDeduplicator()
    load = GatedLoad(error=RuntimeError("source down"))

    waiters = [asyncio.create_task(dedup.dedupe("k", load)) for _ in range(2)]
    await settle()
    load.gate.set()
    results = await asyncio.gather(*waiters, return_exceptions=True)

    assert all(isinstance(r, RuntimeError) for r in results)
    assert dedup.get_in_flight_keys() == []

    retry = GatedLoad("recovered")
    retry.gate.set()
    assert await dedup.dedupe("k", retry) == "recovered"


async def test_cancelled_waiter_does_not_cancel_load():
    dedup = RequestDeduplicator()
    load = GatedLoad()

    impatient = asyncio.create_task(dedup.dedupe("k", load))
    patient = asyncio.create_task(dedup.dedupe("k", load))
    await settle()

    impatient.cancel()
    with pytest.raises(asyncio.CancelledError):
        await impatient

    load.gate.set()
    assert await patient == "draws"
    assert load.calls == 1


async def test_cancel_all():
    dedup = RequestDeduplicator()
    load = GatedLoad()

    waiter = asyncio.create_task(dedup.dedupe("k", load))
    await settle()

    assert await dedup.cancel_all() == 1
    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert dedup.get_in_flight_keys() == []
