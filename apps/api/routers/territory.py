"""
Territory API Router

Thin HTTP surface over the capture engine: user resolution, captures,
batch sync, leaderboard, and per-user territory reads. Domain errors are
translated to structured responses by the handler in main.py.
"""
from dataclasses import asdict
from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, List
from uuid import UUID
from core.config import settings
from core.database import get_db
from schemas import (
    CaptureSummaryResponse,
    LeaderboardEntryResponse,
    RawActivityPayload,
    StravaAthleteProfile,
    SyncReportResponse,
    TileHistoryEntryResponse,
    TileHistoryPageResponse,
    UserResponse,
    UserTilesResponse,
)
from services import capture_orchestrator, leaderboard, territory_reads, user_directory

router = APIRouter(prefix="/v1/territory", tags=["territory"])


@router.post("/users", response_model=UserResponse)
def resolve_user(profile: StravaAthleteProfile, db: Session = Depends(get_db)):
    """Create or refresh the user for a resolved Strava athlete profile."""
    return user_directory.resolve_user(db, profile)


@router.post("/users/{user_id}/captures", response_model=CaptureSummaryResponse)
def capture_activity(
    user_id: UUID,
    payload: RawActivityPayload,
    db: Session = Depends(get_db),
):
    """Capture territory from one Strava activity payload."""
    user = user_directory.get_user(db, user_id)
    summary = capture_orchestrator.capture(db, user, payload)
    return CaptureSummaryResponse.model_validate(summary)


@router.post("/users/{user_id}/sync", response_model=SyncReportResponse)
def sync_activities(
    user_id: UUID,
    payloads: List[Dict[str, Any]] = Body(..., description="Strava activity payloads"),
    db: Session = Depends(get_db),
):
    """
    Capture a batch of activities. Per-activity failures are reported in the
    response instead of failing the whole request.
    """
    user = user_directory.get_user(db, user_id)
    report = capture_orchestrator.sync_activities(db, user, payloads)
    return SyncReportResponse(
        total=report.total,
        captured=report.captured,
        not_closed=report.not_closed,
        failed=report.failed,
        items=[asdict(item) for item in report.items],
    )


@router.get("/leaderboard", response_model=List[LeaderboardEntryResponse])
def get_leaderboard(
    limit: int = Query(settings.LEADERBOARD_DEFAULT_LIMIT, ge=1, le=500, description="Number of users to return"),
    db: Session = Depends(get_db),
):
    return [LeaderboardEntryResponse.model_validate(e) for e in leaderboard.rank(db, limit)]


@router.get("/users/{user_id}/tiles", response_model=UserTilesResponse)
def get_user_tiles(user_id: UUID, db: Session = Depends(get_db)):
    tiles = territory_reads.current_tiles(db, user_id)
    return UserTilesResponse(user_id=user_id, tile_count=len(tiles), tiles=tiles)


@router.get("/users/{user_id}/history", response_model=TileHistoryPageResponse)
def get_user_history(
    user_id: UUID,
    scope: str = Query("owned", pattern="^(owned|involved)$", description="owned: tiles held now; involved: tiles ever gained or lost"),
    limit: int = Query(settings.HISTORY_PAGE_SIZE, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Ownership history, newest first."""
    entries = territory_reads.tile_history(db, user_id, scope=scope, limit=limit, offset=offset)
    return TileHistoryPageResponse(
        user_id=user_id,
        scope=scope,
        limit=limit,
        offset=offset,
        entries=[TileHistoryEntryResponse.model_validate(e) for e in entries],
    )
