"""
Territory leaderboard (derived, read-only).

Rank users by tiles currently owned, then by total distance of their captured
(closed-loop) activities.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.config import settings
from models import Activity, TileOwnership, User


@dataclass
class LeaderboardEntry:
    rank: int
    user: User
    tile_count: int
    total_captured_distance_km: float


def rank(db: Session, limit: Optional[int] = None) -> List[LeaderboardEntry]:
    limit = settings.LEADERBOARD_DEFAULT_LIMIT if limit is None else limit
    if limit <= 0:
        return []

    tiles = (
        select(TileOwnership.owner_id.label("user_id"), func.count().label("tile_count"))
        .group_by(TileOwnership.owner_id)
        .subquery()
    )
    distance = (
        select(Activity.user_id.label("user_id"), func.sum(Activity.distance_m).label("distance_m"))
        .where(Activity.captured.is_(True))
        .group_by(Activity.user_id)
        .subquery()
    )
    tile_count = func.coalesce(tiles.c.tile_count, 0)
    distance_m = func.coalesce(distance.c.distance_m, 0.0)

    rows = db.execute(
        select(User, tile_count, distance_m)
        .outerjoin(tiles, tiles.c.user_id == User.id)
        .outerjoin(distance, distance.c.user_id == User.id)
        .order_by(tile_count.desc(), distance_m.desc())
        .limit(limit)
    ).all()

    return [
        LeaderboardEntry(
            rank=i,
            user=user,
            tile_count=int(count),
            total_captured_distance_km=round(float(meters) / 1000.0, 2),
        )
        for i, (user, count, meters) in enumerate(rows, start=1)
    ]
