"""Request/response models for driver endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from ridedispatch.matching.driver_geospatial_index import DriverStatus
from ridedispatch.ride_requests.models import RideRequest


class PresenceUpdateBody(BaseModel):
    """A driver's periodic location and availability report."""

    location: tuple[float, float] = Field(..., description="Current location (lat, lon)")
    status: DriverStatus
    is_online: bool | None = Field(None, description="Defaults to status != offline")
    reported_at: datetime | None = Field(None, description="Report time; server time if omitted")


class PresenceResponse(BaseModel):
    driver_id: str
    applied: bool
    location: tuple[float, float]
    status: DriverStatus
    is_online: bool
    reported_at: datetime


class NearbyRequestResponse(BaseModel):
    request: RideRequest
    distance_km: float
