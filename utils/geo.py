"""Great-circle distance helpers used by the proximity policy."""
from __future__ import annotations

import math
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance in meters between two WGS84 points.

    NaN in any coordinate propagates to a NaN result; callers that need a
    usable distance should validate through ``coerce_coordinates`` first.
    """
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    # Float error can push a slightly above 1 for near-antipodal points.
    if a > 1.0:
        a = 1.0
    c = 2 * math.asin(math.sqrt(a))
    return EARTH_RADIUS_KM * c * 1000


def coerce_coordinates(latitude, longitude) -> Optional[Tuple[float, float]]:
    """Return ``(lat, lng)`` as floats, or None when either value is unusable."""
    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return lat, lng
