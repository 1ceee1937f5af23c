"""
Read accessors for a user's territory: current tiles and ownership history.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from core.config import settings
from models import TileHistory, TileOwnership
from services.user_directory import get_user

HISTORY_SCOPES = ("owned", "involved")


def current_tiles(db: Session, user_id: UUID) -> List[str]:
    """Tile ids the user owns right now, sorted."""
    user = get_user(db, user_id)
    return list(
        db.execute(
            select(TileOwnership.tile_id)
            .where(TileOwnership.owner_id == user.id)
            .order_by(TileOwnership.tile_id)
        ).scalars()
    )


def tile_history(
    db: Session,
    user_id: UUID,
    scope: str = "owned",
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[TileHistory]:
    """
    Ownership history, newest first.

    scope="owned": full history of every tile the user currently owns
                   (who held it before them, and so on).
    scope="involved": every change where the user gained or lost a tile.
    """
    if scope not in HISTORY_SCOPES:
        raise ValueError(f"scope must be one of {HISTORY_SCOPES}, got {scope!r}")
    user = get_user(db, user_id)
    limit = settings.HISTORY_PAGE_SIZE if limit is None else limit

    query = select(TileHistory)
    if scope == "owned":
        owned = select(TileOwnership.tile_id).where(TileOwnership.owner_id == user.id)
        query = query.where(TileHistory.tile_id.in_(owned))
    else:
        query = query.where(
            or_(TileHistory.new_owner_id == user.id, TileHistory.previous_owner_id == user.id)
        )

    query = query.order_by(TileHistory.created_at.desc(), TileHistory.id.desc())
    return list(db.execute(query.offset(max(0, offset)).limit(max(0, limit))).scalars())
