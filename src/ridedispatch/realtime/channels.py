"""Real-time channel naming and message schemas."""

import re
from typing import Literal

from pydantic import BaseModel

DRIVER_PREFIX = "driver"
RIDER_PREFIX = "rider"
RIDE_PREFIX = "ride"

_CHANNEL_PATTERN = re.compile(rf"^({DRIVER_PREFIX}|{RIDER_PREFIX}|{RIDE_PREFIX}):[\w.-]+$")


def driver_channel(driver_id: str) -> str:
    return f"{DRIVER_PREFIX}:{driver_id}"


def rider_channel(rider_id: str) -> str:
    return f"{RIDER_PREFIX}:{rider_id}"


def ride_channel(ride_id: str) -> str:
    return f"{RIDE_PREFIX}:{ride_id}"


def is_valid_channel(channel: str) -> bool:
    return bool(_CHANNEL_PATTERN.match(channel))


class OfferMessage(BaseModel):
    """Ride request offered to a candidate driver."""

    type: Literal["offer"] = "offer"
    request_id: str
    rider_id: str
    pickup: tuple[float, float]
    destination: tuple[float, float]
    ride_class: str
    distance_to_pickup_km: float
    estimated_fare: float | None
    expires_at: str


class OfferUnavailableMessage(BaseModel):
    """Offer withdrawn: taken by another driver, cancelled or expired."""

    type: Literal["offer_unavailable"] = "offer_unavailable"
    request_id: str
    reason: str
    timestamp: str


class OfferAcceptedMessage(BaseModel):
    type: Literal["offer_accepted"] = "offer_accepted"
    request_id: str
    ride_id: str
    timestamp: str


class DriverMatchedMessage(BaseModel):
    type: Literal["driver_matched"] = "driver_matched"
    request_id: str
    ride_id: str
    driver_id: str
    timestamp: str


class NoDriversFoundMessage(BaseModel):
    type: Literal["no_drivers_found"] = "no_drivers_found"
    request_id: str
    message: str = "no drivers found"
    timestamp: str


class RequestExpiredMessage(BaseModel):
    type: Literal["request_expired"] = "request_expired"
    request_id: str
    timestamp: str


class LocationUpdateMessage(BaseModel):
    type: Literal["location"] = "location"
    ride_id: str
    location: tuple[float, float]
    speed_kmh: float | None
    heading_deg: float | None
    recorded_at: str


class RideStatusMessage(BaseModel):
    type: Literal["status"] = "status"
    ride_id: str
    status: str
    driver_id: str | None
    timestamp: str
