import asyncio
from datetime import timedelta

import pytest

from lottopipe.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from lottopipe.services.errors import CircuitOpenError, TransientSourceError


class CountingOperation:
    def __init__(self, fail: bool = True):
        self.fail = fail
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.fail:
            raise TransientSourceError("network error: connection reset")
        return "page"


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(
        "dhlottery",
        CircuitBreakerConfig(failure_threshold=3, recovery_timeout=timedelta(seconds=30)),
        clock=clock,
    )


async def fail_times(breaker: CircuitBreaker, operation: CountingOperation, times: int) -> None:
    for _ in range(times):
        with pytest.raises(TransientSourceError):
            await breaker.call(operation)


async def test_opens_at_threshold(breaker):
    operation = CountingOperation()

    await fail_times(breaker, operation, 2)
    assert breaker.state == CircuitState.CLOSED

    await fail_times(breaker, operation, 1)
    assert breaker.state == CircuitState.OPEN
    assert breaker.failure_count == 3


async def test_open_circuit_fails_fast_without_calling(breaker):
    operation = CountingOperation()
    await fail_times(breaker, operation, 3)

    with pytest.raises(CircuitOpenError) as exc_info:
        await breaker.call(operation)

    assert operation.calls == 3
    assert exc_info.value.reset_after_seconds == pytest.approx(30)


async def test_half_open_success_closes(breaker, clock):
    await fail_times(breaker, CountingOperation(), 3)
    clock.advance(seconds=31)

    assert await breaker.call(CountingOperation(fail=False)) == "page"
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


async def test_half_open_failure_reopens(breaker, clock):
    await fail_times(breaker, CountingOperation(), 3)
    clock.advance(seconds=31)

    await fail_times(breaker, CountingOperation(), 1)

    assert breaker.state == CircuitState.OPEN
    assert breaker.last_failure_time == clock.now
    with pytest.raises(CircuitOpenError):
        await breaker.call(CountingOperation(fail=False))


async def test_recovery_timeout_must_elapse(breaker, clock):
    await fail_times(breaker, CountingOperation(), 3)
    clock.advance(seconds=30)

    with pytest.raises(CircuitOpenError):
        await breaker.call(CountingOperation(fail=False))
    assert breaker.get_time_until_reset() == 0


async def test_half_open_allows_one_trial(breaker, clock):
    await fail_times(breaker, CountingOperation(), 3)
    clock.advance(seconds=31)
    release = asyncio.Event()

    async def slow_trial() -> str:
        await release.wait()
        return "page"

    trial = asyncio.create_task(breaker.call(slow_trial))
    await asyncio.sleep(0)

    assert breaker.state == CircuitState.HALF_OPEN
    with pytest.raises(CircuitOpenError):
        await breaker.call(CountingOperation(fail=False))

    release.set()
    assert await trial == "page"
    assert breaker.state == CircuitState.CLOSED


async def test_success_resets_consecutive_count(breaker):
    await fail_times(breaker, CountingOperation(), 2)
    await breaker.call(CountingOperation(fail=False))
    await fail_times(breaker, CountingOperation(), 2)

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 2


async def test_reset(breaker):
    await fail_times(breaker, CountingOperation(), 3)

    breaker.reset()

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0
    assert breaker.last_failure_time is None


async def test_status(breaker, clock):
    await fail_times(breaker, CountingOperation(), 3)
    clock.advance(seconds=10)

    status = breaker.get_status()

    assert status["state"] == "OPEN"
    assert status["failure_count"] == 3
    assert status["time_until_reset"] == pytest.approx(20)
