from datetime import datetime

from pydantic import BaseModel


class TrackingPoint(BaseModel):
    """A driver position sample recorded during an active ride."""

    id: int | None = None
    ride_id: str
    location: tuple[float, float]
    speed_kmh: float | None = None
    heading_deg: float | None = None
    recorded_at: datetime
