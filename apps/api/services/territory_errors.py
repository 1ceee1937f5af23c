"""
Territory capture error taxonomy.

Every error carries a stable `reason` code so callers (HTTP layer, batch sync
reports, logs) can report failures without parsing messages.

- CaptureValidationError: bad input, raised before anything is written.
- StoreError: persistence failed; the engine never retries these itself.
- SyncFailed: a StoreError hit during capture, with the cause chained.
- UserNotFound: read-side lookup of an unknown user.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError


class TerritoryError(Exception):
    reason = "TERRITORY_ERROR"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.reason)


class CaptureValidationError(TerritoryError):
    reason = "INVALID_ACTIVITY"


class MissingCoordinates(CaptureValidationError):
    reason = "MISSING_COORDINATES"


class MissingPath(CaptureValidationError):
    reason = "MISSING_PATH"


class InvalidPath(CaptureValidationError):
    reason = "INVALID_PATH"


class StoreError(TerritoryError):
    reason = "STORE_ERROR"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        activity_id: Any = None,
        tile_id: Optional[str] = None,
    ):
        self.activity_id = activity_id
        self.tile_id = tile_id
        context = []
        if activity_id is not None:
            context.append(f"activity={activity_id}")
        if tile_id is not None:
            context.append(f"tile={tile_id}")
        if context:
            message = f"{message or self.reason} ({', '.join(context)})"
        super().__init__(message)


class StoreUnavailable(StoreError):
    reason = "STORE_UNAVAILABLE"


class StoreConflict(StoreError):
    reason = "STORE_CONFLICT"


class SyncFailed(TerritoryError):
    reason = "SYNC_FAILED"

    def __init__(self, message: Optional[str] = None, *, activity_id: Any = None, tile_id: Optional[str] = None):
        self.activity_id = activity_id
        self.tile_id = tile_id
        super().__init__(message)


class UserNotFound(TerritoryError):
    reason = "USER_NOT_FOUND"

    def __init__(self, identifier: Any):
        self.identifier = identifier
        super().__init__(f"user not found: {identifier}")


def store_error_from(
    exc: SQLAlchemyError,
    *,
    activity_id: Any = None,
    tile_id: Optional[str] = None,
) -> StoreError:
    """Classify a SQLAlchemy failure as a conflict or an outage."""
    if isinstance(exc, IntegrityError):
        return StoreConflict(str(exc.orig), activity_id=activity_id, tile_id=tile_id)
    if isinstance(exc, OperationalError) or (isinstance(exc, DBAPIError) and exc.connection_invalidated):
        return StoreUnavailable(str(exc.orig), activity_id=activity_id, tile_id=tile_id)
    return StoreUnavailable(str(exc), activity_id=activity_id, tile_id=tile_id)
