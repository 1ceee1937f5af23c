from sqlalchemy import Column, Integer, BigInteger, Boolean, Float, DateTime, ForeignKey, Text, Index, Uuid
from sqlalchemy.orm import relationship
from core.database import Base
import uuid
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Postgres BIGSERIAL; SQLite only autoincrements INTEGER PRIMARY KEY.
_HistorySeq = BigInteger().with_variant(Integer(), "sqlite")


class User(Base):
    """
    A capturing agent, resolved from a Strava athlete profile.

    `strava_athlete_id` is the external identity and never changes once set;
    only the display fields are refreshed on later resolutions.
    """
    __tablename__ = "app_user"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    # Strava ids exceed 32 bits; keep them 64-bit end to end.
    strava_athlete_id = Column(BigInteger, unique=True, nullable=False)

    username = Column(Text, nullable=True)
    firstname = Column(Text, nullable=True)
    lastname = Column(Text, nullable=True)
    profile_url = Column(Text, nullable=True)

    # --- RELATIONSHIPS ---
    # lazy="dynamic" returns a query; nothing is loaded until asked.
    activities = relationship("Activity", back_populates="user", lazy="dynamic")
    tiles = relationship("TileOwnership", back_populates="owner", lazy="dynamic")

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.firstname, self.lastname) if p).strip()
        return name or (self.username or "Unknown User")


class Activity(Base):
    __tablename__ = "activity"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    # Idempotency key: re-syncing the same Strava activity updates this row.
    strava_activity_id = Column(BigInteger, unique=True, nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)

    name = Column(Text, nullable=True)
    distance_m = Column(Float, nullable=True)
    moving_time_s = Column(Integer, nullable=True)
    start_lat = Column(Float, nullable=True)
    start_lng = Column(Float, nullable=True)
    end_lat = Column(Float, nullable=True)
    end_lng = Column(Float, nullable=True)
    summary_polyline = Column(Text, nullable=True)

    # Closed-loop verdict from the last capture of this activity.
    captured = Column(Boolean, default=False, nullable=False)

    # --- RELATIONSHIPS ---
    user = relationship("User", back_populates="activities")

    __table_args__ = (
        Index("ix_activity_user_captured", "user_id", "captured"),
    )


class TileOwnership(Base):
    """Current owner of one H3 tile. No row means the tile is unclaimed."""
    __tablename__ = "tile_ownership"

    tile_id = Column(Text, primary_key=True)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    owner = relationship("User", back_populates="tiles")


class TileHistory(Base):
    """
    Append-only audit log of ownership changes.

    One row per actual change, written in the same transaction as the
    ownership write it records. previous_owner_id is NULL for a fresh claim.
    """
    __tablename__ = "tile_history"

    id = Column(_HistorySeq, primary_key=True, autoincrement=True)
    tile_id = Column(Text, nullable=False)
    previous_owner_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=True, index=True)
    new_owner_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)
    activity_id = Column(Uuid(as_uuid=True), ForeignKey("activity.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    previous_owner = relationship("User", foreign_keys=[previous_owner_id])
    new_owner = relationship("User", foreign_keys=[new_owner_id])
    activity = relationship("Activity")

    __table_args__ = (
        Index("ix_tile_history_tile_created", "tile_id", "created_at"),
    )
