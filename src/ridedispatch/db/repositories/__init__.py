"""Repository layer for database CRUD operations."""

from .ride_repository import RideRepository
from .ride_request_repository import RideRequestRepository
from .surge_zone_repository import SurgeZoneRepository
from .tracking_repository import TrackingRepository

__all__ = [
    "RideRepository",
    "RideRequestRepository",
    "SurgeZoneRepository",
    "TrackingRepository",
]
