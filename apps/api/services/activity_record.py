"""
Idempotent activity storage keyed by Strava activity id.

Re-syncing an activity (webhook retries, manual re-sync, corrected GPS) must
converge on the same row, so writes are DB-level upserts rather than
get-then-insert.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence
from uuid import UUID
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.database import dialect_insert
from models import Activity

logger = logging.getLogger(__name__)

# Columns refreshed when the same Strava activity is submitted again.
MUTABLE_FIELDS = (
    "user_id",
    "name",
    "distance_m",
    "moving_time_s",
    "start_lat",
    "start_lng",
    "end_lat",
    "end_lng",
    "summary_polyline",
    "captured",
    "updated_at",
)


def _split_latlng(point: Optional[Sequence[float]]) -> tuple[Optional[float], Optional[float]]:
    if not point or len(point) != 2:
        return None, None
    return float(point[0]), float(point[1])


def build_activity_fields(
    user_id: UUID,
    name: Optional[str],
    distance_m: Optional[float],
    moving_time_s: Optional[int],
    start_latlng: Optional[Sequence[float]],
    end_latlng: Optional[Sequence[float]],
    summary_polyline: Optional[str],
    captured: bool,
) -> Dict[str, Any]:
    start_lat, start_lng = _split_latlng(start_latlng)
    end_lat, end_lng = _split_latlng(end_latlng)
    return {
        "user_id": user_id,
        "name": name,
        "distance_m": float(distance_m) if distance_m is not None else None,
        "moving_time_s": int(moving_time_s) if moving_time_s is not None else None,
        "start_lat": start_lat,
        "start_lng": start_lng,
        "end_lat": end_lat,
        "end_lng": end_lng,
        "summary_polyline": summary_polyline,
        "captured": bool(captured),
        "updated_at": datetime.now(timezone.utc),
    }


def upsert_activity(db: Session, strava_activity_id: int, fields: Dict[str, Any]) -> Activity:
    """
    Insert or update the activity row for `strava_activity_id`.

    `fields` comes from `build_activity_fields`. The caller owns the
    transaction: nothing is committed here.
    """
    insert = dialect_insert(db)
    if insert is None:
        return _upsert_via_orm(db, strava_activity_id, fields)

    values = dict(fields, id=uuid.uuid4(), strava_activity_id=int(strava_activity_id))
    values.setdefault("created_at", fields["updated_at"])
    stmt = insert(Activity.__table__).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["strava_activity_id"],
        set_={name: stmt.excluded[name] for name in MUTABLE_FIELDS},
    ).returning(Activity.__table__.c.id)
    activity_id = db.execute(stmt).scalar_one()

    activity = db.get(Activity, activity_id, populate_existing=True)
    logger.debug(f"Upserted activity {strava_activity_id} as {activity_id} (captured={activity.captured})")
    return activity


def _upsert_via_orm(db: Session, strava_activity_id: int, fields: Dict[str, Any]) -> Activity:
    activity = db.execute(
        select(Activity).where(Activity.strava_activity_id == int(strava_activity_id))
    ).scalar_one_or_none()
    if activity is None:
        activity = Activity(strava_activity_id=int(strava_activity_id), **fields)
        db.add(activity)
    else:
        for name, value in fields.items():
            setattr(activity, name, value)
    db.flush()
    return activity


def get_activity_by_strava_id(db: Session, strava_activity_id: int) -> Optional[Activity]:
    return db.execute(
        select(Activity).where(Activity.strava_activity_id == int(strava_activity_id))
    ).scalar_one_or_none()
