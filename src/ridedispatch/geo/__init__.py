from .distance import (
    distance_km,
    haversine_distance_km,
    haversine_distance_m,
    path_length_km,
    validate_coordinate,
)
from .osrm_client import OSRMClient, RouteResponse
from .routing import RoutingProvider

__all__ = [
    "OSRMClient",
    "RouteResponse",
    "RoutingProvider",
    "distance_km",
    "haversine_distance_km",
    "haversine_distance_m",
    "path_length_km",
    "validate_coordinate",
]
