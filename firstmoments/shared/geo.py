"""
Geographic distance helpers.
"""
import math
from typing import List, Tuple

EARTH_RADIUS_METERS = 6371000


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two coordinates in meters"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(lat: float, lng: float, radius_meters: float):
    """
    Rough lat/lng box around a point, used to narrow candidates in SQL
    before the exact haversine check. Longitude bounds may fall outside
    [-180, 180]; pass them through longitude_ranges before querying.
    """
    lat_delta = math.degrees(radius_meters / EARTH_RADIUS_METERS)
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    lng_delta = math.degrees(radius_meters / (EARTH_RADIUS_METERS * cos_lat))
    return (
        max(lat - lat_delta, -90.0), min(lat + lat_delta, 90.0),
        lng - lng_delta, lng + lng_delta
    )


def longitude_ranges(min_lng: float, max_lng: float) -> List[Tuple[float, float]]:
    """Split a longitude span that crosses the antimeridian into valid ranges"""
    if max_lng - min_lng >= 360:
        return [(-180.0, 180.0)]
    if min_lng < -180:
        return [(min_lng + 360, 180.0), (-180.0, max_lng)]
    if max_lng > 180:
        return [(min_lng, 180.0), (-180.0, max_lng - 360)]
    return [(min_lng, max_lng)]
