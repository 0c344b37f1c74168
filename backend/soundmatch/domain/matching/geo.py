"""Great-circle helpers."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0
_KM_PER_DEGREE_LAT = math.pi * EARTH_RADIUS_KM / 180.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in km; identical and antipodal points never leave asin's domain."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def bounding_box(lat: float, lon: float, radius_km: float) -> tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lon, max_lon) enclosing a radius around a point.

    The box is deliberately loose; exact distance is checked afterwards. Longitude
    spans the whole globe near the poles or when the box crosses the antimeridian.
    """
    # Pad by a hair so points exactly on the radius survive float error
    delta_lat = radius_km / _KM_PER_DEGREE_LAT + 1e-6
    min_lat = max(-90.0, lat - delta_lat)
    max_lat = min(90.0, lat + delta_lat)
    cos_lat = math.cos(math.radians(max(abs(min_lat), abs(max_lat))))
    if cos_lat <= 1e-9:
        return min_lat, max_lat, -180.0, 180.0
    delta_lon = radius_km / (_KM_PER_DEGREE_LAT * cos_lat) + 1e-6
    if delta_lon >= 180.0 or lon - delta_lon < -180.0 or lon + delta_lon > 180.0:
        return min_lat, max_lat, -180.0, 180.0
    return min_lat, max_lat, lon - delta_lon, lon + delta_lon
