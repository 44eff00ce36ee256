"""Great-circle helpers for the nearby-issues query."""

import math

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometres between two points given in decimal degrees."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lat: float, lon: float, radius_km: float):
    """
    Coarse (min_lat, max_lat, min_lon, max_lon) box enclosing the circle.

    Used as an indexable pre-filter; the exact distance test is applied after.
    The longitude half-span is the tangent-meridian bound
    ``asin(sin(r/R) / cos(lat))``; it widens to the whole globe when the
    circle reaches a pole.
    """
    angle = radius_km / EARTH_RADIUS_KM
    dlat = math.degrees(angle)
    if lat + dlat >= 90 or lat - dlat <= -90:
        return max(lat - dlat, -90.0), min(lat + dlat, 90.0), lon - 180.0, lon + 180.0
    ratio = math.sin(angle) / math.cos(math.radians(lat))
    dlon = math.degrees(math.asin(min(1.0, ratio)))
    return lat - dlat, lat + dlat, lon - dlon, lon + dlon
