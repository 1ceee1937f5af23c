"""
Administrative reset of territory state.

Deletes in FK-safe order: history -> ownership -> activities -> (users).
This is the only path that removes history rows.
"""

from __future__ import annotations

import logging
from typing import Dict

from sqlalchemy import delete
from sqlalchemy.orm import Session

from models import Activity, TileHistory, TileOwnership, User

logger = logging.getLogger(__name__)


def reset_territory(db: Session, include_users: bool = False) -> Dict[str, int]:
    counts = {
        "tile_history": db.execute(delete(TileHistory)).rowcount,
        "tile_ownership": db.execute(delete(TileOwnership)).rowcount,
        "activities": db.execute(delete(Activity)).rowcount,
        "users": 0,
    }
    if include_users:
        counts["users"] = db.execute(delete(User)).rowcount
    db.commit()
    logger.warning(f"Territory reset: {counts}")
    return counts
