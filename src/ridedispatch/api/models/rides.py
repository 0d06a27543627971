"""Request/response models for ride endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from ridedispatch.rides.ride import CancelledBy


class TransitionBody(BaseModel):
    status: str = Field(..., description="Target ride status")


class CancelRideBody(BaseModel):
    cancelled_by: CancelledBy
    reason: str | None = None


class TrackingPointBody(BaseModel):
    location: tuple[float, float]
    speed_kmh: float | None = Field(None, ge=0)
    heading_deg: float | None = Field(None, ge=0, lt=360)
    recorded_at: datetime | None = None


class TrackingPointAck(BaseModel):
    ride_id: str
    recorded: bool
    point_id: int | None = None
