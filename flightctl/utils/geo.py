"""
Geographic utilities

Local offsets and distances for plan generation.
"""

import math
from typing import Tuple

# WGS84 equatorial radius
EARTH_RADIUS_M = 6378137.0


def offset_position(lat: float, lon: float,
                    north: float, east: float) -> Tuple[float, float]:
    """
    Move a GPS position by a local north/east offset

    Uses flat Earth approximation, accurate for distances < 10km

    Args:
        lat, lon: Reference position in degrees
        north, east: Offset in meters

    Returns:
        Tuple of (lat, lon) in degrees
    """
    d_lat_rad = north / EARTH_RADIUS_M
    d_lon_rad = east / (EARTH_RADIUS_M * math.cos(math.radians(lat)))

    return lat + math.degrees(d_lat_rad), lon + math.degrees(d_lon_rad)


def haversine_distance(lat1: float, lon1: float,
                       lat2: float, lon2: float) -> float:
    """
    Calculate great-circle distance between two points

    Args:
        lat1, lon1: First point in degrees
        lat2, lon2: Second point in degrees

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c
