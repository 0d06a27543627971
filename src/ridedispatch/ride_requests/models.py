"""Ride request model."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field

from ridedispatch.pricing.models import FareEstimate, RideClass


class RequestStatus(str, Enum):
    OPEN = "open"
    CLAIMED = "claimed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class RideRequest(BaseModel):
    """A rider's standing request for a ride.

    ``expires_at`` is ``created_at`` plus the shorter of the rider's max
    wait and the request TTL. A request is active exactly while it is open.
    """

    id: str
    rider_id: str
    pickup: tuple[float, float]
    destination: tuple[float, float]
    ride_class: RideClass = RideClass.ECONOMY
    max_wait_seconds: int = Field(gt=0)
    ttl_seconds: int = Field(gt=0)
    created_at: datetime
    expires_at: datetime
    status: RequestStatus = RequestStatus.OPEN
    claimed_by: str | None = None
    claimed_at: datetime | None = None
    fare_estimate: FareEstimate | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_active(self) -> bool:
        return self.status == RequestStatus.OPEN

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_open_at(self, now: datetime) -> bool:
        return self.is_active and not self.is_expired(now)
