"""Ride state machine and model."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from ridedispatch.core.exceptions import InvalidTransitionError
from ridedispatch.pricing.models import RideClass


class RideStatus(str, Enum):
    """Ride lifecycle states."""

    REQUESTED = "requested"
    ACCEPTED = "accepted"
    DRIVER_ARRIVING = "driver_arriving"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


VALID_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.REQUESTED: {RideStatus.ACCEPTED, RideStatus.CANCELLED},
    RideStatus.ACCEPTED: {RideStatus.DRIVER_ARRIVING, RideStatus.CANCELLED},
    RideStatus.DRIVER_ARRIVING: {RideStatus.IN_PROGRESS, RideStatus.CANCELLED},
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})

# Statuses during which the driver is committed and positions are tracked
ACTIVE_STATUSES = frozenset(
    {RideStatus.ACCEPTED, RideStatus.DRIVER_ARRIVING, RideStatus.IN_PROGRESS}
)

STATUS_TIMESTAMPS: dict[RideStatus, str] = {
    RideStatus.ACCEPTED: "accepted_at",
    RideStatus.DRIVER_ARRIVING: "driver_arriving_at",
    RideStatus.IN_PROGRESS: "started_at",
    RideStatus.COMPLETED: "completed_at",
    RideStatus.CANCELLED: "cancelled_at",
}

CancelledBy = Literal["rider", "driver", "system"]


class Ride(BaseModel):
    """Ride with state machine logic."""

    id: str
    request_id: str
    rider_id: str
    driver_id: str | None = None
    pickup: tuple[float, float]
    destination: tuple[float, float]
    pickup_address: str | None = None
    destination_address: str | None = None
    ride_class: RideClass = RideClass.ECONOMY
    status: RideStatus = Field(default=RideStatus.REQUESTED)
    fare_amount: float | None = None
    distance_km: float | None = None
    duration_min: float | None = None
    payment_status: str = "pending"
    cancelled_by: CancelledBy | None = None
    cancellation_reason: str | None = None
    requested_at: datetime
    accepted_at: datetime | None = None
    driver_arriving_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def can_transition_to(self, target: RideStatus) -> bool:
        return target in VALID_TRANSITIONS[self.status]

    def transition_to(self, target: RideStatus, at: datetime) -> None:
        """Move to ``target`` and stamp its timestamp.

        Raises InvalidTransitionError, leaving the ride untouched, for any
        target the current status does not allow.
        """
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Cannot transition from terminal status {self.status.value}",
                details={"ride_id": self.id, "from": self.status.value, "to": target.value},
            )

        if not self.can_transition_to(target):
            raise InvalidTransitionError(
                f"Invalid transition from {self.status.value} to {target.value}",
                details={"ride_id": self.id, "from": self.status.value, "to": target.value},
            )

        self.status = target
        setattr(self, STATUS_TIMESTAMPS[target], at)

    def cancel(self, by: CancelledBy, reason: str | None, at: datetime) -> None:
        """Cancel the ride with metadata."""
        self.transition_to(RideStatus.CANCELLED, at)
        self.cancelled_by = by
        self.cancellation_reason = reason
