"""
Service error to HTTP error mapping
"""

from fastapi import HTTPException, status

from quoteguard.services.errors import (
    CacheExhaustedError,
    CircuitOpenError,
    ServiceError,
    ValidationError,
)


class UnprocessableRequestError(HTTPException):
    """Request failed validation"""

    def __init__(self, detail: dict | str = "Validation error"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail
        )


class ServiceUnavailableError(HTTPException):
    """No live or cached data could be served"""

    def __init__(self, detail: dict | str = "Service unavailable"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


class UpstreamError(HTTPException):
    """The search provider failed"""

    def __init__(self, detail: dict | str = "Upstream error"):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


def to_http_exception(error: ServiceError) -> HTTPException:
    """Translate a service error into the HTTPException returned to clients."""
    detail = {"error": type(error).__name__, "message": error.user_message()}

    if isinstance(error, ValidationError):
        return UnprocessableRequestError(detail)
    if isinstance(error, (CacheExhaustedError, CircuitOpenError)):
        return ServiceUnavailableError(detail)
    return UpstreamError(detail)
