"""Great-circle distance, zoom-to-radius conversion and coordinate validation."""
from __future__ import annotations

import math
from typing import Any, Optional, Tuple

from domain.models import BoundingBox, Coordinate

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0
REFERENCE_ZOOM = 14
DEFAULT_BASE_RADIUS_DEGREES = 0.01


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in kilometers between two lat/lon points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    # rounding can push a just past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def radius_degrees_for_zoom(zoom: float, base_radius: float = DEFAULT_BASE_RADIUS_DEGREES) -> float:
    """Search half-width in degrees; doubles for every zoom level below 14."""
    return base_radius * 2 ** (REFERENCE_ZOOM - zoom)


def radius_km_for_zoom(zoom: float, base_radius: float = DEFAULT_BASE_RADIUS_DEGREES) -> float:
    return radius_degrees_for_zoom(zoom, base_radius) * KM_PER_DEGREE


def bounding_box(lat: float, lon: float, radius_degrees: float) -> BoundingBox:
    return BoundingBox(
        south=lat - radius_degrees,
        west=lon - radius_degrees,
        north=lat + radius_degrees,
        east=lon + radius_degrees,
    )


def _as_finite_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def is_valid_coordinate(lat: Any, lon: Any) -> bool:
    """True only for finite numbers inside [-90, 90] x [-180, 180]."""
    lat_f = _as_finite_float(lat)
    lon_f = _as_finite_float(lon)
    if lat_f is None or lon_f is None:
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0


def to_coordinate(lat: Any, lon: Any) -> Optional[Coordinate]:
    """Build a Coordinate from loosely-typed provider values, or None if invalid."""
    if not is_valid_coordinate(lat, lon):
        return None
    return Coordinate(lat=float(lat), lon=float(lon))


def search_window(center: Coordinate, radius_km: float) -> Tuple[float, float, Optional[Tuple[float, float]]]:
    """
    Degree window that fully contains the circle of radius_km around center.

    Returns (min_lat, max_lat, lon_range). lon_range is None when the circle
    reaches a pole or crosses the antimeridian; callers then skip the
    longitude prefilter and rely on the exact distance check alone.
    """
    angular = radius_km / EARTH_RADIUS_KM
    # 0.1% slack so floating-point error never excludes a point on the circle
    dlat = math.degrees(angular) * 1.001
    min_lat = center.lat - dlat
    max_lat = center.lat + dlat
    if min_lat <= -90.0 or max_lat >= 90.0:
        return max(min_lat, -90.0), min(max_lat, 90.0), None

    ratio = math.sin(angular) / math.cos(math.radians(center.lat))
    if ratio >= 1.0:
        return min_lat, max_lat, None
    dlon = math.degrees(math.asin(ratio)) * 1.001
    west = center.lon - dlon
    east = center.lon + dlon
    if west < -180.0 or east > 180.0:
        return min_lat, max_lat, None
    return min_lat, max_lat, (west, east)
