"""
Distance calculation using the Haversine formula.

Assumption
----------
We use great-circle (Haversine) distance on a spherical Earth instead of
road distance from a routing engine.  Fares and durations derived from it
are estimates; nearby-driver search is a plain linear radius filter.

Complexity: O(1) per call.
"""

import math

EARTH_RADIUS_KM = 6_371.0


def distance_km(
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
    # rounding can push a marginally past 1.0 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))
