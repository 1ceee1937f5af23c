"""
User resolution from Strava athlete profiles, plus read-side lookups.
"""

from __future__ import annotations

import logging
from typing import Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import User
from schemas import StravaAthleteProfile
from services.territory_errors import UserNotFound

logger = logging.getLogger(__name__)


def _apply_display_fields(user: User, profile: StravaAthleteProfile) -> None:
    user.username = profile.username
    user.firstname = profile.firstname
    user.lastname = profile.lastname
    user.profile_url = profile.profile


def resolve_user(db: Session, profile: StravaAthleteProfile) -> User:
    """
    Create the user on first resolution of a Strava athlete; afterwards only
    refresh display fields. Commits.
    """
    user = db.execute(
        select(User).where(User.strava_athlete_id == profile.id)
    ).scalar_one_or_none()

    if user is None:
        user = User(strava_athlete_id=profile.id)
        _apply_display_fields(user, profile)
        db.add(user)
        try:
            db.commit()
            logger.info(f"Created user {user.id} for Strava athlete {profile.id}")
            return user
        except IntegrityError:
            # Another request resolved the same athlete first.
            db.rollback()
            user = db.execute(
                select(User).where(User.strava_athlete_id == profile.id)
            ).scalar_one()

    _apply_display_fields(user, profile)
    db.commit()
    return user


def get_user(db: Session, user_id: Union[UUID, str]) -> User:
    try:
        key = user_id if isinstance(user_id, UUID) else UUID(str(user_id))
    except ValueError:
        raise UserNotFound(user_id) from None
    user = db.get(User, key)
    if user is None:
        raise UserNotFound(user_id)
    return user


def get_user_by_athlete_id(db: Session, strava_athlete_id: int) -> User:
    user = db.execute(
        select(User).where(User.strava_athlete_id == int(strava_athlete_id))
    ).scalar_one_or_none()
    if user is None:
        raise UserNotFound(strava_athlete_id)
    return user
