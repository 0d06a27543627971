"""Request/response models for ride request endpoints."""

from pydantic import BaseModel, Field

from ridedispatch.ride_requests.models import RideRequest


class CreateRideRequestBody(BaseModel):
    rider_id: str = Field(..., min_length=1)
    pickup: tuple[float, float] = Field(..., description="Pickup location (lat, lon)")
    destination: tuple[float, float] = Field(..., description="Destination (lat, lon)")
    ride_class: str = Field("economy", description="economy, premium, pool, luxury or suv")
    max_wait_seconds: int | None = Field(None, gt=0)
    ttl_seconds: int | None = Field(None, gt=0)
    dispatch: bool = Field(True, description="Offer the request to nearby drivers right away")


class CreateRideRequestResponse(BaseModel):
    request: RideRequest
    drivers_offered: list[str] = Field(default_factory=list)


class UpdatePickupBody(BaseModel):
    pickup: tuple[float, float]


class DriverActionBody(BaseModel):
    driver_id: str = Field(..., min_length=1)


class CandidateResponse(BaseModel):
    driver_id: str
    location: tuple[float, float]
    distance_km: float


class DispatchResponse(BaseModel):
    request_id: str
    candidates: list[CandidateResponse]


class DeclineResponse(BaseModel):
    request_id: str
    driver_id: str
    status: str = "declined"
