"""
Closed-loop test for a recorded track.

A track is eligible for territory capture only when its start and end points
are within CLOSURE_THRESHOLD_M of each other (great-circle distance).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from services.territory_errors import MissingCoordinates

# Mean Earth radius (meters), same value Strava and most haversine helpers use.
EARTH_RADIUS_M = 6_371_000.0
DEFAULT_CLOSURE_THRESHOLD_M = 200.0


@dataclass(frozen=True)
class ClosureResult:
    distance_m: float
    is_closed: bool
    threshold_m: float


def _as_latlng(point: Optional[Sequence[float]], label: str) -> tuple[float, float]:
    if point is None:
        raise MissingCoordinates(f"{label} coordinates are missing")
    try:
        lat, lng = point
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError) as e:
        raise MissingCoordinates(f"{label} coordinates are malformed: {point!r}") from e
    if math.isnan(lat) or math.isnan(lng):
        raise MissingCoordinates(f"{label} coordinates are malformed: {point!r}")
    return lat, lng


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two lat/lng points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Clamp: rounding can push `a` a hair past 1 for antipodal points.
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def evaluate_closure(
    start: Optional[Sequence[float]],
    end: Optional[Sequence[float]],
    threshold_m: float = DEFAULT_CLOSURE_THRESHOLD_M,
) -> ClosureResult:
    """
    Classify a track as a closed loop.

    Args:
        start: [lat, lng] of the first point
        end: [lat, lng] of the last point
        threshold_m: inclusive max separation for a closed loop

    Raises:
        MissingCoordinates: either endpoint absent or malformed
    """
    start_lat, start_lng = _as_latlng(start, "start")
    end_lat, end_lng = _as_latlng(end, "end")

    distance = haversine_m(start_lat, start_lng, end_lat, end_lng)
    return ClosureResult(
        distance_m=distance,
        is_closed=distance <= threshold_m,
        threshold_m=threshold_m,
    )
