import math
from typing import Optional

EARTH_RADIUS_M = 6371000


def haversine_m(lat1, lng1, lat2, lng2):
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(
    lat: float, lng: float, radius_meters: float
) -> tuple[float, float, Optional[float], Optional[float]]:
    """
    Conservative (min_lat, max_lat, min_lng, max_lng) around a point.

    Every point within radius_meters of (lat, lng) lies inside the box.
    min_lng / max_lng are None when the circle touches a pole or crosses
    the antimeridian; only latitude can be used to prefilter then.
    """
    angular = radius_meters / EARTH_RADIUS_M
    # small margins against float error at the edge
    dlat = math.degrees(angular) + 1e-9
    min_lat = max(lat - dlat, -90.0)
    max_lat = min(lat + dlat, 90.0)

    cos_lat = math.cos(math.radians(lat))
    if min_lat <= -90.0 or max_lat >= 90.0 or cos_lat <= 0:
        return min_lat, max_lat, None, None

    ratio = math.sin(angular) / cos_lat
    if ratio >= 1:
        return min_lat, max_lat, None, None

    dlng = math.degrees(math.asin(ratio)) + 1e-9
    min_lng = lng - dlng
    max_lng = lng + dlng
    if min_lng < -180.0 or max_lng > 180.0:
        return min_lat, max_lat, None, None

    return min_lat, max_lat, min_lng, max_lng
