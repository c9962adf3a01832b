"""
Service layer - resilience and caching for draw acquisition.

Provides:
- CacheManager: Multi-tier read-through cache with per-entry TTL
- CircuitBreaker: Stops calling a failing source
- RequestDeduplicator: One in-flight acquisition per cache key
- retry_async: Exponential backoff for transient failures
- validate / clean_batch: Draw record validation

The domain facade lives in lottopipe.services.lottery_cache.
"""

from lottopipe.services.cache import CacheManager, CacheStats
from lottopipe.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from lottopipe.services.deduplicator import RequestDeduplicator
from lottopipe.services.errors import (
    CacheStorageError,
    CircuitOpenError,
    InvalidQueryError,
    NoDataError,
    RequestTimeoutError,
    ServiceError,
    StructuralParseError,
    TransientSourceError,
    ValidationError,
)
from lottopipe.services.retry import (
    CACHE_RETRY_CONFIG,
    DEFAULT_RETRY_CONFIG,
    SCRAPING_RETRY_CONFIG,
    RetryConfig,
    retry_async,
    retry_scraping_operation,
)
from lottopipe.services.storage import CacheEntry, CacheLevel, StorageBackend
from lottopipe.services.validator import clean_batch, validate

__all__ = [
    # Errors
    "ServiceError",
    "TransientSourceError",
    "RequestTimeoutError",
    "StructuralParseError",
    "ValidationError",
    "CircuitOpenError",
    "CacheStorageError",
    "InvalidQueryError",
    "NoDataError",
    # Cache
    "CacheManager",
    "CacheStats",
    "CacheEntry",
    "CacheLevel",
    "StorageBackend",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    # Deduplicator
    "RequestDeduplicator",
    # Retry
    "RetryConfig",
    "DEFAULT_RETRY_CONFIG",
    "SCRAPING_RETRY_CONFIG",
    "CACHE_RETRY_CONFIG",
    "retry_async",
    "retry_scraping_operation",
    # Validation
    "validate",
    "clean_batch",
]
