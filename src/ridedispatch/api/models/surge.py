"""Request/response models for surge zone endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from ridedispatch.pricing.models import SurgeZone


class CreateSurgeZoneBody(BaseModel):
    name: str = Field(..., min_length=1)
    boundary: list[tuple[float, float]] = Field(..., description="Polygon vertices (lat, lon)")
    multiplier: float = Field(..., ge=1.0)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    is_active: bool = True
    reason: str | None = None


class UpdateSurgeZoneBody(BaseModel):
    """Fields left out of the body keep their current value."""

    name: str | None = Field(None, min_length=1)
    boundary: list[tuple[float, float]] | None = None
    multiplier: float | None = Field(None, ge=1.0)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    is_active: bool | None = None
    reason: str | None = None


class MultiplierResponse(BaseModel):
    location: tuple[float, float]
    multiplier: float
    zones: list[SurgeZone]
