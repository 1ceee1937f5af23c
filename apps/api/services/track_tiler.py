"""
Track -> tile discretization.

Strava's `summary_polyline` is a Google encoded polyline (precision 5). Each
decoded point is indexed into an H3 cell at the configured resolution; the
result is the distinct set of cells the track passed through.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set, Tuple

import h3
import polyline

from services.territory_errors import InvalidPath

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]

MIN_RESOLUTION = 0
MAX_RESOLUTION = 15


def decode_path(encoded: Optional[str]) -> List[LatLng]:
    """Decode an encoded polyline into ordered (lat, lng) points."""
    if not encoded or not encoded.strip():
        raise InvalidPath("path is empty")
    try:
        points = polyline.decode(encoded)
    except (IndexError, ValueError, TypeError) as e:
        raise InvalidPath(f"path could not be decoded: {e}") from e
    if not points:
        raise InvalidPath("path decoded to zero points")
    return [(float(lat), float(lng)) for lat, lng in points]


def tile_for_point(lat: float, lng: float, resolution: int) -> str:
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
        raise InvalidPath(f"point out of range: ({lat}, {lng})")
    try:
        return h3.latlng_to_cell(lat, lng, resolution)
    except (h3.H3BaseException, ValueError, TypeError) as e:
        raise InvalidPath(f"point ({lat}, {lng}) could not be indexed: {e}") from e


def tiles_for_points(points: List[LatLng], resolution: int) -> Set[str]:
    if not MIN_RESOLUTION <= resolution <= MAX_RESOLUTION:
        raise InvalidPath(f"unsupported tile resolution: {resolution}")
    return {tile_for_point(lat, lng, resolution) for lat, lng in points}


def tiles_for_path(encoded: Optional[str], resolution: int) -> Set[str]:
    """
    Decode `encoded` and return the set of H3 cells it traverses.

    The set is never empty for a decodable path and never larger than the
    number of decoded points.
    """
    points = decode_path(encoded)
    tiles = tiles_for_points(points, resolution)
    logger.debug(f"Tiled {len(points)} points into {len(tiles)} cells at resolution {resolution}")
    return tiles
