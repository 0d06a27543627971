"""Ride repository for CRUD operations with status tracking."""

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ridedispatch.pricing.models import RideClass
from ridedispatch.rides.ride import ACTIVE_STATUSES, Ride, RideStatus

from ..schema import Ride as RideRow
from ..utils import format_location, parse_location

ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_STATUSES]

_NO_SYNC = {"synchronize_session": False}

# Columns a status change may touch
_MUTABLE_FIELDS = (
    "driver_id",
    "accepted_at",
    "driver_arriving_at",
    "started_at",
    "completed_at",
    "cancelled_at",
    "cancelled_by",
    "cancellation_reason",
    "distance_km",
    "duration_min",
    "payment_status",
)


class RideRepository:
    """Repository for ride persistence."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, ride: Ride) -> None:
        """Insert a ride. Flushes so the one-active-ride-per-driver index is checked here."""
        row = RideRow(
            id=ride.id,
            request_id=ride.request_id,
            rider_id=ride.rider_id,
            driver_id=ride.driver_id,
            pickup_location=format_location(ride.pickup),
            destination_location=format_location(ride.destination),
            pickup_address=ride.pickup_address,
            destination_address=ride.destination_address,
            ride_class=ride.ride_class.value,
            status=ride.status.value,
            fare_amount=ride.fare_amount,
            distance_km=ride.distance_km,
            duration_min=ride.duration_min,
            payment_status=ride.payment_status,
            requested_at=ride.requested_at,
            accepted_at=ride.accepted_at,
        )
        self.session.add(row)
        self.session.flush()

    def get(self, ride_id: str) -> Ride | None:
        """Get ride by ID, returning domain model."""
        row = self.session.get(RideRow, ride_id, populate_existing=True)
        if row is None:
            return None
        return self._to_domain(row)

    def get_by_request(self, request_id: str) -> Ride | None:
        stmt = select(RideRow).where(RideRow.request_id == request_id)
        row = self.session.execute(stmt).scalars().first()
        return self._to_domain(row) if row else None

    def get_active_for_driver(self, driver_id: str) -> Ride | None:
        stmt = select(RideRow).where(
            RideRow.driver_id == driver_id,
            RideRow.status.in_(ACTIVE_STATUS_VALUES),
        )
        row = self.session.execute(stmt).scalars().first()
        return self._to_domain(row) if row else None

    def update_status(self, ride: Ride, expected: RideStatus) -> bool:
        """Persist ``ride`` only if the stored status is still ``expected``."""
        stmt = (
            update(RideRow)
            .where(RideRow.id == ride.id, RideRow.status == expected.value)
            .values(
                status=ride.status.value,
                **{name: getattr(ride, name) for name in _MUTABLE_FIELDS},
            )
        )
        return self.session.execute(stmt, execution_options=_NO_SYNC).rowcount == 1

    def list_by_rider(self, rider_id: str) -> list[Ride]:
        """List rides by rider ID, newest first."""
        stmt = (
            select(RideRow)
            .where(RideRow.rider_id == rider_id)
            .order_by(RideRow.requested_at.desc())
        )
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def list_by_driver(self, driver_id: str) -> list[Ride]:
        """List rides by driver ID, newest first."""
        stmt = (
            select(RideRow)
            .where(RideRow.driver_id == driver_id)
            .order_by(RideRow.requested_at.desc())
        )
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def count_by_status(self, user_id: str, is_driver: bool = False) -> dict[str, int]:
        """Ride counts per status for a rider, or for a driver when ``is_driver``."""
        stmt = (
            select(RideRow.status, func.count())
            .where(self._owner(user_id, is_driver))
            .group_by(RideRow.status)
        )
        return {status: n for status, n in self.session.execute(stmt).all()}

    def completed_totals(
        self, user_id: str, is_driver: bool = False
    ) -> tuple[float, float, float, float]:
        """Fare, distance and duration sums plus average distance over completed rides."""
        stmt = select(
            func.sum(RideRow.fare_amount),
            func.sum(RideRow.distance_km),
            func.sum(RideRow.duration_min),
            func.avg(RideRow.distance_km),
        ).where(
            self._owner(user_id, is_driver),
            RideRow.status == RideStatus.COMPLETED.value,
        )
        fare, distance, duration, avg_distance = self.session.execute(stmt).one()
        return (
            float(fare or 0.0),
            float(distance or 0.0),
            float(duration or 0.0),
            float(avg_distance or 0.0),
        )

    @staticmethod
    def _owner(user_id: str, is_driver: bool):
        return RideRow.driver_id == user_id if is_driver else RideRow.rider_id == user_id

    def _to_domain(self, row: RideRow) -> Ride:
        """Convert ORM model to domain model."""
        return Ride(
            id=row.id,
            request_id=row.request_id,
            rider_id=row.rider_id,
            driver_id=row.driver_id,
            pickup=parse_location(row.pickup_location),
            destination=parse_location(row.destination_location),
            pickup_address=row.pickup_address,
            destination_address=row.destination_address,
            ride_class=RideClass(row.ride_class),
            status=RideStatus(row.status),
            fare_amount=row.fare_amount,
            distance_km=row.distance_km,
            duration_min=row.duration_min,
            payment_status=row.payment_status,
            cancelled_by=row.cancelled_by,  # type: ignore[arg-type]
            cancellation_reason=row.cancellation_reason,
            requested_at=row.requested_at,
            accepted_at=row.accepted_at,
            driver_arriving_at=row.driver_arriving_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
            cancelled_at=row.cancelled_at,
        )
