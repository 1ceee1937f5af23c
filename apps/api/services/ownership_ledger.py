"""
Tile ownership ledger.

The only writer of `tile_ownership` and `tile_history`. Policy is
"last submission wins": a claim either creates the ownership row, leaves it
alone (same owner), or overwrites it (different owner). Every actual change
appends exactly one history row in the same transaction.

CONCURRENCY:
- Each tile is its own unit of work: conditional write + history row, then
  commit. A failure on one tile never rolls back tiles already committed.
- The write is conditional on the owner we observed (INSERT ... ON CONFLICT
  DO NOTHING for unclaimed tiles, UPDATE ... WHERE owner_id = :observed for
  owned ones). A writer that loses the race re-reads the winner's state and
  re-evaluates, so history always names the true previous owner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import insert as generic_insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.database import dialect_insert
from models import TileHistory, TileOwnership
from services.territory_errors import StoreConflict, StoreError, store_error_from

logger = logging.getLogger(__name__)


class ClaimOutcome(str, Enum):
    CLAIMED_NEW = "claimed_new"
    TRANSFERRED = "transferred"
    UNCHANGED = "unchanged"


@dataclass
class ClaimResult:
    claimed_new: int = 0
    transferred: int = 0
    unchanged: int = 0
    outcomes: Dict[str, ClaimOutcome] = field(default_factory=dict)

    def record(self, tile_id: str, outcome: ClaimOutcome) -> None:
        self.outcomes[tile_id] = outcome
        if outcome is ClaimOutcome.CLAIMED_NEW:
            self.claimed_new += 1
        elif outcome is ClaimOutcome.TRANSFERRED:
            self.transferred += 1
        else:
            self.unchanged += 1

    @property
    def changed(self) -> int:
        return self.claimed_new + self.transferred


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _read_owner(db: Session, tile_id: str) -> Optional[UUID]:
    return db.execute(
        select(TileOwnership.owner_id).where(TileOwnership.tile_id == tile_id)
    ).scalar_one_or_none()


def _insert_if_unclaimed(db: Session, tile_id: str, owner_id: UUID) -> bool:
    """Create the ownership row unless someone else already has. True if we did."""
    insert = dialect_insert(db)
    values = {"tile_id": tile_id, "owner_id": owner_id, "updated_at": _utcnow()}
    if insert is None:
        # No ON CONFLICT support: a duplicate key surfaces as IntegrityError,
        # which the caller treats as a lost race.
        db.execute(generic_insert(TileOwnership).values(**values))
        return True
    stmt = (
        insert(TileOwnership.__table__)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["tile_id"])
        .returning(TileOwnership.__table__.c.tile_id)
    )
    return db.execute(stmt).first() is not None


def _compare_and_swap(db: Session, tile_id: str, expected_owner: UUID, new_owner: UUID) -> bool:
    """Move the tile to `new_owner` only if it is still held by `expected_owner`."""
    stmt = (
        update(TileOwnership)
        .where(TileOwnership.tile_id == tile_id, TileOwnership.owner_id == expected_owner)
        .values(owner_id=new_owner, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def _append_history(
    db: Session,
    tile_id: str,
    previous_owner_id: Optional[UUID],
    new_owner_id: UUID,
    activity_id: UUID,
) -> None:
    db.add(
        TileHistory(
            tile_id=tile_id,
            previous_owner_id=previous_owner_id,
            new_owner_id=new_owner_id,
            activity_id=activity_id,
            created_at=_utcnow(),
        )
    )


def claim_tile(
    db: Session,
    tile_id: str,
    claimant_id: UUID,
    activity_id: UUID,
    max_attempts: Optional[int] = None,
) -> ClaimOutcome:
    """
    Claim a single tile for `claimant_id` as one atomic unit.

    Raises:
        StoreConflict: lost the conditional write `max_attempts` times in a row
        StoreUnavailable: the store failed mid-write (nothing for this tile committed)
    """
    attempts = max_attempts or settings.TILE_CLAIM_MAX_ATTEMPTS

    for attempt in range(1, attempts + 1):
        try:
            current_owner = _read_owner(db, tile_id)

            if current_owner == claimant_id:
                db.rollback()
                return ClaimOutcome.UNCHANGED

            if current_owner is None:
                won = _insert_if_unclaimed(db, tile_id, claimant_id)
                outcome = ClaimOutcome.CLAIMED_NEW
            else:
                won = _compare_and_swap(db, tile_id, current_owner, claimant_id)
                outcome = ClaimOutcome.TRANSFERRED

            if not won:
                # Another capture wrote first; re-read its result and decide again.
                db.rollback()
                logger.debug(f"Lost ownership race on tile {tile_id} (attempt {attempt}/{attempts})")
                continue

            _append_history(db, tile_id, current_owner, claimant_id, activity_id)
            db.commit()
            return outcome
        except SQLAlchemyError as e:
            db.rollback()
            err = store_error_from(e, activity_id=activity_id, tile_id=tile_id)
            if isinstance(err, StoreConflict) and attempt < attempts:
                logger.debug(f"Conflicting write on tile {tile_id}, re-evaluating: {e}")
                continue
            raise err from e

    logger.warning(f"Giving up on tile {tile_id} after {attempts} lost ownership races")
    raise StoreConflict(
        f"tile ownership kept changing underneath claim after {attempts} attempts",
        activity_id=activity_id,
        tile_id=tile_id,
    )


def claim(
    db: Session,
    tile_ids: Iterable[str],
    claimant_id: UUID,
    activity_id: UUID,
) -> ClaimResult:
    """
    Claim every tile in `tile_ids` for `claimant_id`, caused by `activity_id`.

    Tiles are processed independently in sorted order. If one fails, tiles
    already claimed stay claimed; re-running the same capture finishes the
    rest, since tiles the claimant already holds are no-ops.
    """
    result = ClaimResult()
    for tile_id in sorted(set(tile_ids)):
        try:
            outcome = claim_tile(db, tile_id, claimant_id, activity_id)
        except StoreError:
            logger.error(
                f"Tile claim failed for activity {activity_id} at tile {tile_id}; "
                f"{result.changed} tile(s) already applied"
            )
            raise
        result.record(tile_id, outcome)

    logger.info(
        f"Claimed tiles for user {claimant_id}: new={result.claimed_new} "
        f"transferred={result.transferred} unchanged={result.unchanged}"
    )
    return result
