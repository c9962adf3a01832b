"""
Service layer exceptions.

TransientSourceError and its subclasses are the only errors whose messages
match the default retry patterns; everything else fails on the first attempt.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class TransientSourceError(ServiceError):
    """Network, navigation or timeout failure talking to the source."""

    pass


class RequestTimeoutError(TransientSourceError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timeout after {timeout}s",
            service_id=service_id,
        )


class StructuralParseError(ServiceError):
    """Expected page structure was not found."""

    def __init__(self, message: str, round_no: int | None = None):
        self.round_no = round_no
        super().__init__(message)


class ValidationError(ServiceError):
    """A draw record failed validation."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
        )


class CacheStorageError(ServiceError):
    """Durable cache tier read or write failed."""

    pass


class InvalidQueryError(ServiceError):
    """Query parameters are outside the supported range."""

    pass


class NoDataError(ServiceError):
    """Acquisition finished but produced no valid draws."""

    pass
