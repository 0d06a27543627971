"""Append-only storage for ride tracking points."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from ridedispatch.tracking.models import TrackingPoint

from ..schema import TrackingPoint as TrackingPointRow
from ..utils import format_location, parse_location


class TrackingRepository:
    def __init__(self, session: Session):
        self.session = session

    def append(self, point: TrackingPoint) -> TrackingPoint:
        row = TrackingPointRow(
            ride_id=point.ride_id,
            location=format_location(point.location),
            speed_kmh=point.speed_kmh,
            heading_deg=point.heading_deg,
            recorded_at=point.recorded_at,
        )
        self.session.add(row)
        self.session.flush()
        return point.model_copy(update={"id": row.id})

    def list_for_ride(self, ride_id: str) -> list[TrackingPoint]:
        """Points of a ride in recording order."""
        stmt = (
            select(TrackingPointRow)
            .where(TrackingPointRow.ride_id == ride_id)
            .order_by(TrackingPointRow.recorded_at, TrackingPointRow.id)
        )
        return [
            TrackingPoint(
                id=row.id,
                ride_id=row.ride_id,
                location=parse_location(row.location),
                speed_kmh=row.speed_kmh,
                heading_deg=row.heading_deg,
                recorded_at=row.recorded_at,
            )
            for row in self.session.execute(stmt).scalars().all()
        ]
