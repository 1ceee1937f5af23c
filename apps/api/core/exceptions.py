"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Domain errors raised by
the territory services are translated here so every failure reaches the
client as a structured reason code.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any

from services.territory_errors import (
    CaptureValidationError,
    StoreConflict,
    StoreError,
    SyncFailed,
    TerritoryError,
    UserNotFound,
)


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str, error_code: str = "NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code=error_code
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=422,
            detail=detail,
            error_code=error_code
        )


class ConflictError(APIException):
    """Resource conflict (e.g., lost a concurrent write)."""

    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )


class ServiceUnavailableError(APIException):
    """Backing store unavailable; the caller may retry."""

    def __init__(self, detail: str, error_code: str = "SERVICE_UNAVAILABLE"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code=error_code
        )


def api_exception_for(exc: TerritoryError) -> APIException:
    """Map a territory domain error onto its HTTP representation."""
    if isinstance(exc, UserNotFound):
        return NotFoundError("User", str(exc.identifier), error_code=exc.reason)
    if isinstance(exc, CaptureValidationError):
        return ValidationError(str(exc), error_code=exc.reason)

    store_error = exc.__cause__ if isinstance(exc, SyncFailed) else exc
    if isinstance(store_error, StoreConflict):
        return ConflictError(str(exc), error_code=exc.reason)
    if isinstance(store_error, StoreError) or isinstance(exc, SyncFailed):
        return ServiceUnavailableError(str(exc), error_code=exc.reason)
    return APIException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
        error_code=exc.reason,
    )
