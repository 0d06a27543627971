"""Pricing domain models: ride classes, fare estimates and surge zones."""

import logging
from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator
from shapely.geometry import Polygon

from ridedispatch.db.utils import utc_now

logger = logging.getLogger(__name__)


class RideClass(str, Enum):
    """Service tiers a rider can request."""

    ECONOMY = "economy"
    PREMIUM = "premium"
    POOL = "pool"
    LUXURY = "luxury"
    SUV = "suv"

    @classmethod
    def parse(cls, value: "str | RideClass | None") -> "RideClass":
        """Map a raw value to a ride class, falling back to the lowest tier."""
        if isinstance(value, RideClass):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning(f"Unknown ride class {value!r}, using {FALLBACK_RIDE_CLASS.value}")
            return FALLBACK_RIDE_CLASS


FALLBACK_RIDE_CLASS = RideClass.ECONOMY


class FareEstimate(BaseModel):
    """Fare quote attached to a ride request. Money values are rounded to cents."""

    distance_km: float
    duration_min: float
    base_fare: float
    surge_multiplier: float = Field(ge=1.0)
    total_fare: float


class SurgeZone(BaseModel):
    """Polygonal area with a fare multiplier over a time window.

    The boundary is a list of (lat, lon) vertices; the ring is closed
    automatically when the last vertex differs from the first.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    boundary: list[tuple[float, float]]
    multiplier: float = Field(ge=1.0)
    starts_at: datetime = Field(default_factory=utc_now)
    ends_at: datetime | None = None
    is_active: bool = True
    reason: str | None = None

    @field_validator("boundary")
    @classmethod
    def close_ring(cls, v: list[tuple[float, float]]) -> list[tuple[float, float]]:
        if len(set(v)) < 3:
            raise ValueError("Surge zone boundary needs at least 3 distinct vertices")
        if v[0] != v[-1]:
            v = [*v, v[0]]
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "SurgeZone":
        if self.ends_at is not None and self.ends_at <= self.starts_at:
            raise ValueError("Surge zone must end after it starts")
        return self

    def is_in_effect(self, at: datetime) -> bool:
        return (
            self.is_active
            and self.starts_at <= at
            and (self.ends_at is None or self.ends_at > at)
        )

    def to_polygon(self) -> Polygon:
        # shapely works in (x=lon, y=lat)
        return Polygon([(lon, lat) for lat, lon in self.boundary])
