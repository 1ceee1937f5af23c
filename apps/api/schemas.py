from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from datetime import datetime
from uuid import UUID
from typing import Annotated, Any, List, Optional

# Strava ids are 64-bit; JSON clients (JavaScript) lose precision past 2**53,
# so external ids always leave the API as strings.
ExternalId = Annotated[int, PlainSerializer(lambda v: str(v), return_type=str)]

# Inbound ids must fit the signed BIGINT columns they are stored in.
MAX_EXTERNAL_ID = 2**63 - 1
InboundExternalId = Annotated[int, Field(ge=1, le=MAX_EXTERNAL_ID)]


# --- INBOUND: Strava payloads ---

class StravaAthleteProfile(BaseModel):
    """Resolved athlete profile from the Strava OAuth exchange."""
    id: InboundExternalId
    username: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    profile: Optional[str] = None  # Profile image URL

    model_config = ConfigDict(extra="ignore")


class StravaActivityMap(BaseModel):
    summary_polyline: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class RawActivityPayload(BaseModel):
    """Subset of Strava's SummaryActivity/DetailedActivity the capture engine reads."""
    id: InboundExternalId
    name: Optional[str] = None
    distance: Optional[float] = None  # meters
    moving_time: Optional[int] = None  # seconds
    start_latlng: Optional[List[float]] = None
    end_latlng: Optional[List[float]] = None
    map: Optional[StravaActivityMap] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("start_latlng", "end_latlng", mode="before")
    @classmethod
    def _empty_latlng_is_missing(cls, v: Any) -> Any:
        # Strava sends [] for activities recorded without GPS.
        if isinstance(v, (list, tuple)) and len(v) == 0:
            return None
        return v

    @property
    def summary_polyline(self) -> Optional[str]:
        return self.map.summary_polyline if self.map else None


# --- OUTBOUND ---

class UserResponse(BaseModel):
    id: UUID
    strava_athlete_id: ExternalId
    username: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    profile_url: Optional[str] = None
    display_name: str

    model_config = ConfigDict(from_attributes=True)


class ActivityResponse(BaseModel):
    id: UUID
    strava_activity_id: ExternalId
    user_id: UUID
    name: Optional[str] = None
    distance_m: Optional[float] = None
    moving_time_s: Optional[int] = None
    start_lat: Optional[float] = None
    start_lng: Optional[float] = None
    end_lat: Optional[float] = None
    end_lng: Optional[float] = None
    captured: bool

    model_config = ConfigDict(from_attributes=True)


class CaptureSummaryResponse(BaseModel):
    closure_distance_m: float
    is_closed: bool
    threshold_m: float
    resolution: int
    tile_count: int
    sample_tiles: List[str]
    claimed_new: int = 0
    transferred: int = 0
    unchanged: int = 0
    activity: ActivityResponse

    model_config = ConfigDict(from_attributes=True)


class SyncItemResponse(BaseModel):
    strava_activity_id: Optional[ExternalId] = None
    status: str  # 'captured', 'not_closed', 'error'
    tile_count: int = 0
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SyncReportResponse(BaseModel):
    total: int
    captured: int
    not_closed: int
    failed: int
    items: List[SyncItemResponse]

    model_config = ConfigDict(from_attributes=True)


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user: UserResponse
    tile_count: int
    total_captured_distance_km: float

    model_config = ConfigDict(from_attributes=True)


class UserTilesResponse(BaseModel):
    user_id: UUID
    tile_count: int
    tiles: List[str]


class TileHistoryEntryResponse(BaseModel):
    id: int
    tile_id: str
    previous_owner_id: Optional[UUID] = None
    new_owner_id: UUID
    activity_id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TileHistoryPageResponse(BaseModel):
    user_id: UUID
    scope: str
    limit: int
    offset: int
    entries: List[TileHistoryEntryResponse] = Field(default_factory=list)
