"""
CircuitBreaker - Stops calling a failing source until it has had time to recover.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Source is failing, calls fail fast with CircuitOpenError
- HALF_OPEN: One trial call is let through to probe recovery

Transitions:
- CLOSED → OPEN: When failure_threshold consecutive failures are reached
- OPEN → HALF_OPEN: On the first call after recovery_timeout since the last failure
- HALF_OPEN → CLOSED: Trial call succeeded
- HALF_OPEN → OPEN: Trial call failed
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from lottopipe.services.errors import CircuitOpenError

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"  # failing fast
    HALF_OPEN = "HALF_OPEN"  # one probe allowed


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 3  # consecutive failures
    recovery_timeout: timedelta = timedelta(seconds=30)


class CircuitBreaker:
    """
    Circuit breaker guarding one class of operation.

    Usage:
        cb = CircuitBreaker("dhlottery")
        html = await cb.call(lambda: session.fetch(url, timeout=15))
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.service_id = service_id
        self.config = config if config is not None else CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_by: datetime | None = None  # time of the most recent failure
        self._probing = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def last_failure_time(self) -> datetime | None:
        return self._opened_by

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an operation through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open (the operation is not invoked)
        """
        self._admit()

        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise
        except BaseException:
            # Cancelled probe; the next call may probe instead
            self._probing = False
            raise

        self._on_success()
        return result

    def _admit(self) -> None:
        if self._state == CircuitState.OPEN:
            if not self._cooled_down():
                raise CircuitOpenError(self.service_id, self.get_time_until_reset() or 0)
            self._move_to(CircuitState.HALF_OPEN)

        if self._state == CircuitState.HALF_OPEN:
            if self._probing:
                raise CircuitOpenError(self.service_id, 0)
            self._probing = True

    def _cooled_down(self) -> bool:
        if self._opened_by is None:
            return True
        return self._clock() - self._opened_by > self.config.recovery_timeout

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._failures = 0
            self._probing = False
            self._move_to(CircuitState.CLOSED)
        else:
            self._failures = 0

    def _on_failure(self) -> None:
        self._failures += 1
        self._opened_by = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._probing = False
            self._move_to(CircuitState.OPEN)
        elif self._failures >= self.config.failure_threshold:
            self._move_to(CircuitState.OPEN)

    def _move_to(self, state: CircuitState) -> None:
        previous, self._state = self._state, state
        if state == CircuitState.OPEN:
            logger.warning(
                f"Circuit '{self.service_id}': {previous.value} -> OPEN "
                f"({self._failures} consecutive failures)"
            )
        else:
            logger.info(f"Circuit '{self.service_id}': {previous.value} -> {state.value}")

    def reset(self) -> None:
        """Force the breaker closed and forget past failures."""
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_by = None
        self._probing = False
        logger.info(f"Circuit '{self.service_id}' reset by hand")

    def get_time_until_reset(self) -> float | None:
        """Seconds until the next call may probe the source, or None when not open."""
        if self._state != CircuitState.OPEN or self._opened_by is None:
            return None

        elapsed = self._clock() - self._opened_by
        return max(0.0, (self.config.recovery_timeout - elapsed).total_seconds())

    def get_status(self) -> dict[str, Any]:
        last_failure = self._opened_by.isoformat() if self._opened_by else None
        return {
            "service_id": self.service_id,
            "state": self._state.value,
            "failure_count": self._failures,
            "last_failure": last_failure,
            "time_until_reset": self.get_time_until_reset(),
        }
