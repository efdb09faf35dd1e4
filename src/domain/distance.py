"""
Distance helpers using the Haversine formula.

Assumption
----------
Road distance and duration come from an upstream estimator; the engine
only needs great-circle distance to decide whether a route is anchored at
the platform's fixed point, and as a fallback estimate when none was
supplied.

Complexity: O(1) per call.
"""

import math

EARTH_RADIUS_KM = 6_371.0


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def within_radius(
    lat: float, lng: float, center_lat: float, center_lng: float, radius_km: float
) -> bool:
    return haversine_km(lat, lng, center_lat, center_lng) <= radius_km
