"""
Great-circle distance and coordinate formatting.

This is the ONE place the haversine formula lives. The evaluator, the
on-screen report, the print view and the PDF all call haversine_km() so
that every surface shows the same distance for the same record.
"""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0

# Claimed vs captured points closer than this count as a match
MATCH_RADIUS_M = 200


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometers between two lat/lng points."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def within_radius(distance_km: float, radius_m: float = MATCH_RADIUS_M) -> bool:
    return distance_km * 1000 <= radius_m


def format_location(lat: float, lng: float) -> str:
    """Render a position as "lat,lng" with 7 decimals (~1 cm)."""
    return f"{lat:.7f},{lng:.7f}"


def parse_location(value: str | None) -> tuple[float, float] | None:
    """Parse a "lat,lng" string. Returns None if it is missing or malformed."""
    if not value:
        return None
    parts = value.split(",")
    if len(parts) != 2:
        return None
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        return None
