"""
Territory capture: one Strava activity in, tile claims out.

Pipeline (each step may exit early):
1. Validate start/end coordinates          -> MissingCoordinates
2. Closed-loop test (GeometryClosure)
3. Closed: tile the path (TrackTiler)       -> MissingPath / InvalidPath
   Not closed: no tiles
4. Upsert the activity with captured = closed
5. Closed with tiles: claim them (OwnershipLedger), caused by this activity
6. Return a CaptureSummary

Steps 1-3 write nothing. Store failures in 4-5 surface as SyncFailed with the
store error chained. If claiming fails part way, the activity row keeps the
correct `captured` flag; re-running the same capture completes the claims.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Set, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from models import Activity, User
from schemas import RawActivityPayload
from services.activity_record import build_activity_fields, upsert_activity
from services.geometry_closure import evaluate_closure
from services.ownership_ledger import ClaimResult, claim
from services.territory_errors import (
    CaptureValidationError,
    MissingPath,
    StoreError,
    SyncFailed,
    TerritoryError,
    store_error_from,
)
from services.track_tiler import tiles_for_path

logger = logging.getLogger(__name__)


@dataclass
class CaptureSummary:
    closure_distance_m: float
    is_closed: bool
    threshold_m: float
    resolution: int
    tile_count: int
    sample_tiles: List[str]
    activity: Activity
    claimed_new: int = 0
    transferred: int = 0
    unchanged: int = 0


@dataclass
class SyncItem:
    strava_activity_id: Optional[int]
    status: str  # 'captured', 'not_closed', 'error'
    tile_count: int = 0
    reason: Optional[str] = None


@dataclass
class SyncReport:
    items: List[SyncItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def captured(self) -> int:
        return sum(1 for i in self.items if i.status == "captured")

    @property
    def not_closed(self) -> int:
        return sum(1 for i in self.items if i.status == "not_closed")

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.status == "error")


def parse_payload(raw: Union[RawActivityPayload, Mapping[str, Any]]) -> RawActivityPayload:
    if isinstance(raw, RawActivityPayload):
        return raw
    try:
        return RawActivityPayload.model_validate(raw)
    except PydanticValidationError as e:
        raise CaptureValidationError(f"activity payload is malformed: {e.errors()}") from e


def _tiles_for_closed_track(payload: RawActivityPayload, resolution: int) -> Set[str]:
    path = payload.summary_polyline
    if not path:
        raise MissingPath(f"activity {payload.id} is a closed loop but has no summary polyline")
    return tiles_for_path(path, resolution)


def capture(
    db: Session,
    user: User,
    raw_track: Union[RawActivityPayload, Mapping[str, Any]],
    resolution: Optional[int] = None,
    threshold_m: Optional[float] = None,
) -> CaptureSummary:
    """
    Run the full capture pipeline for one activity.

    Resolution and closure threshold default to the current settings, read at
    call time.

    Raises:
        CaptureValidationError (MissingCoordinates, MissingPath, InvalidPath): nothing written
        SyncFailed: store error while persisting the activity or claiming tiles
    """
    payload = parse_payload(raw_track)
    resolution = settings.TILE_RESOLUTION if resolution is None else resolution
    threshold = settings.CLOSURE_THRESHOLD_M if threshold_m is None else threshold_m

    closure = evaluate_closure(payload.start_latlng, payload.end_latlng, threshold)
    tiles: Set[str] = _tiles_for_closed_track(payload, resolution) if closure.is_closed else set()

    try:
        activity = upsert_activity(
            db,
            payload.id,
            build_activity_fields(
                user_id=user.id,
                name=payload.name,
                distance_m=payload.distance,
                moving_time_s=payload.moving_time,
                start_latlng=payload.start_latlng,
                end_latlng=payload.end_latlng,
                summary_polyline=payload.summary_polyline,
                captured=closure.is_closed,
            ),
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        err = store_error_from(e, activity_id=payload.id)
        err.__cause__ = e
        logger.error(f"Failed to persist activity {payload.id}: {err}")
        raise SyncFailed(f"could not persist activity {payload.id}", activity_id=payload.id) from err

    claim_result = ClaimResult()
    if closure.is_closed and tiles:
        try:
            claim_result = claim(db, tiles, user.id, activity.id)
        except StoreError as e:
            raise SyncFailed(
                f"could not claim tiles for activity {payload.id}",
                activity_id=payload.id,
                tile_id=e.tile_id,
            ) from e

    sample = sorted(tiles)[: settings.CAPTURE_TILE_SAMPLE_SIZE]
    logger.info(
        f"Captured activity {payload.id} for user {user.id}: closed={closure.is_closed} tiles={len(tiles)}",
        extra={
            "extra_fields": {
                "strava_activity_id": str(payload.id),
                "closure_distance_m": round(closure.distance_m, 2),
                "tile_count": len(tiles),
                "claimed_new": claim_result.claimed_new,
                "transferred": claim_result.transferred,
            }
        },
    )
    return CaptureSummary(
        closure_distance_m=round(closure.distance_m, 2),
        is_closed=closure.is_closed,
        threshold_m=threshold,
        resolution=resolution,
        tile_count=len(tiles),
        sample_tiles=sample,
        activity=activity,
        claimed_new=claim_result.claimed_new,
        transferred=claim_result.transferred,
        unchanged=claim_result.unchanged,
    )


def sync_activities(
    db: Session,
    user: User,
    payloads: Iterable[Union[RawActivityPayload, Mapping[str, Any]]],
) -> SyncReport:
    """
    Capture a batch of activities (e.g. one page of the athlete's recent
    activities). Each activity is independent: a failure is recorded in the
    report and the rest of the batch still runs.
    """
    report = SyncReport()
    for raw in payloads:
        external_id = raw.id if isinstance(raw, RawActivityPayload) else raw.get("id")
        try:
            summary = capture(db, user, raw)
        except TerritoryError as e:
            logger.warning(f"Activity {external_id} not captured: {e.reason}: {e}")
            report.items.append(SyncItem(strava_activity_id=_as_int(external_id), status="error", reason=e.reason))
            continue
        report.items.append(
            SyncItem(
                strava_activity_id=summary.activity.strava_activity_id,
                status="captured" if summary.is_closed else "not_closed",
                tile_count=summary.tile_count,
            )
        )

    logger.info(
        f"Synced {report.total} activities for user {user.id}: "
        f"captured={report.captured} not_closed={report.not_closed} failed={report.failed}"
    )
    return report


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
