"""Centralized geographic distance calculations.

This module provides Haversine distance calculations for determining
proximity between geographic coordinates. Used for driver discovery,
nearby-request listings and trip distance from tracking points.
"""

from collections.abc import Sequence
from math import atan2, cos, radians, sin, sqrt

from ridedispatch.core.exceptions import ValidationError

EARTH_RADIUS_M = 6_371_000  # Earth radius in meters


def haversine_distance_m(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points in meters.

    Uses the Haversine formula to calculate the shortest distance over
    the Earth's surface between two points specified by latitude/longitude.

    Args:
        lat1: Latitude of first point in degrees
        lon1: Longitude of first point in degrees
        lat2: Latitude of second point in degrees
        lon2: Longitude of second point in degrees

    Returns:
        Distance between the two points in meters
    """
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_M * c


def haversine_distance_km(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points in kilometers.

    Convenience wrapper around haversine_distance_m for use cases that
    need kilometer units (e.g., driver matching radius).
    """
    return haversine_distance_m(lat1, lon1, lat2, lon2) / 1000.0


def distance_km(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Distance in kilometers between two (lat, lon) coordinates."""
    return haversine_distance_km(a[0], a[1], b[0], b[1])


def path_length_km(points: Sequence[tuple[float, float]]) -> float:
    """Total length of a polyline of (lat, lon) points in kilometers.

    Returns 0.0 for fewer than two points.
    """
    total = 0.0
    for previous, current in zip(points, points[1:], strict=False):
        total += distance_km(previous, current)
    return total


def validate_coordinate(point: tuple[float, float], name: str = "location") -> tuple[float, float]:
    """Return ``point`` as floats, raising ValidationError if it is off the globe."""
    lat, lon = float(point[0]), float(point[1])
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise ValidationError(
            f"{name} ({lat}, {lon}) is not a valid coordinate",
            details={name: [lat, lon]},
        )
    return (lat, lon)
