"""
Retry with exponential backoff for async operations.

Errors are classified by message: an error is retried only when its message
contains one of the configured patterns (case-insensitive). The delay between
attempts is min(base_delay * backoff_multiplier ** (attempt - 1), max_delay)
and is awaited with asyncio.sleep so other tasks keep running.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for one call site."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds
    backoff_multiplier: float = 2.0
    retryable_errors: tuple[str, ...] = (
        "timeout",
        "network",
        "econnreset",
        "enotfound",
        "etimedout",
        "navigation",
        "waiting for selector",
    )


DEFAULT_RETRY_CONFIG = RetryConfig()

# Scraping tolerates more attempts and a gentler backoff to spare the source
SCRAPING_RETRY_CONFIG = RetryConfig(
    max_attempts=5,
    base_delay=2.0,
    max_delay=30.0,
    backoff_multiplier=1.5,
    retryable_errors=(
        "timeout",
        "network",
        "navigation",
        "waiting for selector",
        "protocol error",
        "page crashed",
        "target closed",
    ),
)

CACHE_RETRY_CONFIG = RetryConfig(
    max_attempts=2,
    base_delay=0.1,
    max_delay=1.0,
    backoff_multiplier=2.0,
    retryable_errors=("database is locked", "timeout"),
)


def is_retryable_error(error: BaseException, patterns: tuple[str, ...]) -> bool:
    """Check whether an error message matches any retryable pattern."""
    message = str(error).lower()
    return any(pattern.lower() in message for pattern in patterns)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff delay after the given (1-based) failed attempt."""
    delay = config.base_delay * config.backoff_multiplier ** (attempt - 1)
    return min(delay, config.max_delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    context: str = "Operation",
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """
    Run an async operation with retries.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        config: Retry policy
        context: Label used in log messages
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        The first successful result

    Raises:
        The error of the last attempt, or the first non-retryable error
    """
    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await operation()
            if attempt > 1:
                logger.info(f"{context} succeeded on attempt {attempt}")
            return result

        except Exception as e:
            logger.warning(
                f"{context} attempt {attempt}/{config.max_attempts} failed: {e}"
            )

            if attempt == config.max_attempts:
                logger.error(f"{context} failed after {config.max_attempts} attempts")
                raise

            if not is_retryable_error(e, config.retryable_errors):
                logger.error(f"{context} hit a non-retryable error: {e}")
                raise

            delay = calculate_delay(attempt, config)
            logger.debug(f"{context} retrying in {delay:.2f}s")
            await sleep(delay)

    raise ValueError(f"{context}: max_attempts must be at least 1")


async def retry_scraping_operation(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
) -> T:
    """Retry wrapper preconfigured for scraping calls."""
    return await retry_async(operation, SCRAPING_RETRY_CONFIG, operation_name)
