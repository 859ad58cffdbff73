"""
HeatAtlas Spatial Operations
Region preparation and study-area metadata derived from a single polygon ring.

All measurements here are PLANAR approximations computed directly on
degrees (flat-earth shoelace, vertex-mean centroid). They are accurate
for city-scale regions (roughly under 100 km²) and drift for large or
high-latitude regions. They feed report text only; raster statistics
are computed by the compute backend on the true geometry.
"""

import math
from datetime import date
from typing import Dict, List, Sequence

from shapely.geometry import Polygon

from heatatlas.utils.exceptions import InputValidationError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = math.pi * EARTH_RADIUS_KM / 180.0

Ring = List[List[float]]


def close_ring(ring: Sequence[Sequence[float]]) -> Ring:
    """Return the ring with first == last. Already-closed rings come back unchanged."""
    points = [[float(p[0]), float(p[1])] for p in ring]
    if points and points[0] != points[-1]:
        points.append(list(points[0]))
    return points


def validate_ring(ring: Sequence[Sequence[float]]) -> Ring:
    """
    Close and validate an exterior ring of [lng, lat] positions.

    Raises:
        InputValidationError: fewer than 4 points once closed, out-of-range
            coordinates, or a ring that encloses no area.
    """
    for position in ring:
        if len(position) < 2:
            raise InputValidationError("Each position must be [lng, lat]", field="geometry", value=position)
        lng, lat = position[0], position[1]
        if not -180 <= lng <= 180:
            raise InputValidationError("Longitude must be between -180 and 180", field="geometry", value=lng)
        if not -90 <= lat <= 90:
            raise InputValidationError("Latitude must be between -90 and 90", field="geometry", value=lat)

    closed = close_ring(ring)
    if len(closed) < 4:
        raise InputValidationError(
            "Polygon ring needs at least 4 points (first == last)",
            field="geometry",
            details={"points": len(closed)},
        )

    if Polygon(closed).area == 0:
        raise InputValidationError("Polygon ring encloses no area", field="geometry")

    return closed


def ring_bounds(ring: Sequence[Sequence[float]]) -> Dict[str, float]:
    """North/south/east/west extent of the ring."""
    min_lng, min_lat, max_lng, max_lat = Polygon(close_ring(ring)).bounds
    return {
        "north": max_lat,
        "south": min_lat,
        "east": max_lng,
        "west": min_lng,
    }


def planar_area_km2(ring: Sequence[Sequence[float]]) -> float:
    """
    Shoelace area on raw degrees, converted with a fixed km-per-degree factor.

    Known limitation: ignores the cos(latitude) shrink of longitude degrees,
    so it overestimates away from the equator.
    """
    closed = close_ring(ring)
    twice_area = 0.0
    for (lng1, lat1), (lng2, lat2) in zip(closed[:-1], closed[1:]):
        twice_area += (lng2 - lng1) * (lat2 + lat1)

    area_deg2 = abs(twice_area) / 2.0
    return round(area_deg2 * KM_PER_DEGREE * KM_PER_DEGREE, 2)


def ring_centroid(ring: Sequence[Sequence[float]]) -> Dict[str, float]:
    """Arithmetic mean of the distinct vertices (closing vertex excluded)."""
    vertices = close_ring(ring)[:-1]
    return {
        "lat": sum(p[1] for p in vertices) / len(vertices),
        "lng": sum(p[0] for p in vertices) / len(vertices),
    }


def format_coordinates(bounds: Dict[str, float]) -> str:
    return (
        f"{bounds['north']:.4f}°N, {bounds['south']:.4f}°S, "
        f"{bounds['east']:.4f}°E, {bounds['west']:.4f}°W"
    )


def determine_season(start: date, end: date) -> str:
    """Bucket a date window into a meteorological season (northern hemisphere)."""
    start_month, end_month = start.month, end.month

    if start_month >= 6 and end_month <= 8:
        return "Summer"
    if start_month >= 3 and end_month <= 5:
        return "Spring"
    if start_month >= 9 and end_month <= 11:
        return "Autumn"
    if start_month >= 12 or end_month <= 2:
        return "Winter"
    return "Mixed"


def duration_days(start: date, end: date) -> int:
    return abs((end - start).days)
