"""
Service layer exceptions.

Every failure that crosses the search boundary is turned into a
ServiceError carrying an ErrorKind, so retry classification and HTTP
mapping are plain lookups instead of attribute probing.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure categories."""

    VALIDATION = "VALIDATION"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    CONNECTION = "CONNECTION"
    SERVER_ERROR = "SERVER_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    UNKNOWN = "UNKNOWN"


class ServiceError(Exception):
    """Base exception for service layer errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        kind: ErrorKind | None = None,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.service_id = service_id
        if kind is not None:
            self.kind = kind
        self.status = status
        self.details = details or {}
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)

    def user_message(self) -> str:
        """Message that is safe to show to an end user."""
        return "An error occurred while communicating with external services."

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "service_id": self.service_id,
            "status": self.status,
            "details": self.details,
        }


class ValidationError(ServiceError):
    """Request failed input validation. Never retried."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message, details={"field": field})

    def user_message(self) -> str:
        if self.field:
            return f"Invalid value for field '{self.field}': {self.message}"
        return f"Validation error: {self.message}"


class TransientAPIError(ServiceError):
    """Upstream failure that is expected to clear up on its own."""

    kind = ErrorKind.SERVER_ERROR

    def user_message(self) -> str:
        return "The search service is temporarily unavailable. Please try again."


class RequestTimeoutError(TransientAPIError):
    """Request timed out."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
            details={"timeout": timeout},
        )

    def user_message(self) -> str:
        return "The request timed out. Please try again."


class RateLimitError(TransientAPIError):
    """Rate limit exceeded."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, service_id: str, retry_after: float | None = None):
        self.retry_after = retry_after
        msg = f"Rate limit exceeded for service '{service_id}'"
        if retry_after:
            msg += f", retry after {retry_after}s"
        super().__init__(
            msg,
            service_id=service_id,
            status=429,
            details={"retry_after": retry_after},
        )

    def user_message(self) -> str:
        return "Rate limit exceeded. Please try again later."


class AuthenticationError(ServiceError):
    """Upstream rejected our credentials (401/403). Never retried."""

    kind = ErrorKind.UNAUTHORIZED

    def user_message(self) -> str:
        return (
            "Authentication with the search service failed. "
            "Check that SERPER_API_KEY is set to a valid key."
        )


class ResourceNotFoundError(ServiceError):
    """Upstream endpoint or resource does not exist."""

    kind = ErrorKind.NOT_FOUND

    def user_message(self) -> str:
        return "The requested resource was not found."


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, service_id: str, state: str, reset_after_seconds: float):
        self.state = state
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker {state} for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
            details={"state": state, "reset_after_seconds": reset_after_seconds},
        )

    def user_message(self) -> str:
        return "The search service is unavailable right now. Please try again later."


class RetryExhaustedError(ServiceError):
    """All retry attempts failed with retryable errors."""

    def __init__(self, attempts: int, total_delay: float, last_error: BaseException):
        self.attempts = attempts
        self.total_delay = total_delay
        self.last_error = last_error
        super().__init__(
            f"Operation failed after {attempts} attempt(s) "
            f"({total_delay:.2f}s total backoff): {last_error}",
            service_id=getattr(last_error, "service_id", None),
            kind=error_kind(last_error),
            status=getattr(last_error, "status", None),
            details={"attempts": attempts, "total_delay": total_delay},
        )

    def user_message(self) -> str:
        return (
            f"The search service kept failing after {self.attempts} attempts. "
            "Please try again later."
        )


class CacheExhaustedError(ServiceError):
    """Live fetch failed and no live or stale cache entry could stand in."""

    def __init__(
        self,
        person: str,
        breaker_state: str,
        tried: list[str],
        attempts: int = 0,
        cause: BaseException | None = None,
    ):
        self.person = person
        self.breaker_state = breaker_state
        self.tried = tried
        self.attempts = attempts
        self.cause = cause
        reason = f" (last error: {cause})" if cause is not None else ""
        super().__init__(
            f"Unable to fetch quotes for '{person}': tried {', '.join(tried)}"
            f"{reason}; no cached data available; circuit breaker is {breaker_state}",
            service_id=getattr(cause, "service_id", None),
            kind=error_kind(cause) if cause is not None else ErrorKind.UNKNOWN,
            details={
                "breaker_state": breaker_state,
                "tried": tried,
                "attempts": attempts,
            },
        )

    def user_message(self) -> str:
        return (
            f"Quotes for '{self.person}' are unavailable: the live search failed "
            f"and nothing is cached (circuit breaker {self.breaker_state})."
        )


def error_kind(error: BaseException | None) -> ErrorKind:
    """Classify any exception into an ErrorKind."""
    if isinstance(error, ServiceError):
        return error.kind
    if isinstance(error, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(error, ConnectionError):
        return ErrorKind.CONNECTION
    return ErrorKind.UNKNOWN
