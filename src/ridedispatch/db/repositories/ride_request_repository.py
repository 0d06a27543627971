"""Ride request repository.

Every state change is a conditional UPDATE whose WHERE clause encodes the
precondition; the affected row count tells the caller whether it won.
"""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ridedispatch.pricing.models import FareEstimate, RideClass
from ridedispatch.ride_requests.models import RequestStatus, RideRequest

from ..schema import RideRequest as RideRequestRow
from ..utils import format_location, parse_location

OPEN = RequestStatus.OPEN.value

# Sessions are short-lived; skip reconciling the identity map after bulk UPDATEs
_NO_SYNC = {"synchronize_session": False}


class RideRequestRepository:
    """Repository for ride request persistence."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, request: RideRequest) -> None:
        """Insert a request. Flushes so uniqueness violations surface here."""
        row = RideRequestRow(
            id=request.id,
            rider_id=request.rider_id,
            pickup_location=format_location(request.pickup),
            destination_location=format_location(request.destination),
            ride_class=request.ride_class.value,
            max_wait_seconds=request.max_wait_seconds,
            ttl_seconds=request.ttl_seconds,
            status=request.status.value,
            is_active=request.is_active,
            created_at=request.created_at,
            expires_at=request.expires_at,
            **self._estimate_columns(request.fare_estimate),
        )
        self.session.add(row)
        self.session.flush()

    def get(self, request_id: str) -> RideRequest | None:
        row = self.session.get(RideRequestRow, request_id, populate_existing=True)
        if row is None:
            return None
        return self._to_domain(row)

    def get_active_for_rider(self, rider_id: str) -> RideRequest | None:
        stmt = select(RideRequestRow).where(
            RideRequestRow.rider_id == rider_id,
            RideRequestRow.status == OPEN,
        )
        row = self.session.execute(stmt).scalars().first()
        return self._to_domain(row) if row else None

    def claim(self, request_id: str, driver_id: str, now: datetime) -> bool:
        """Compare-and-swap open -> claimed. True only for the single winner."""
        stmt = (
            update(RideRequestRow)
            .where(
                RideRequestRow.id == request_id,
                RideRequestRow.status == OPEN,
                RideRequestRow.expires_at > now,
            )
            .values(
                status=RequestStatus.CLAIMED.value,
                is_active=False,
                claimed_by=driver_id,
                claimed_at=now,
                updated_at=now,
            )
        )
        return self.session.execute(stmt, execution_options=_NO_SYNC).rowcount == 1

    def cancel(self, request_id: str, now: datetime) -> bool:
        stmt = (
            update(RideRequestRow)
            .where(
                RideRequestRow.id == request_id,
                RideRequestRow.status == OPEN,
                RideRequestRow.expires_at > now,
            )
            .values(status=RequestStatus.CANCELLED.value, is_active=False, updated_at=now)
        )
        return self.session.execute(stmt, execution_options=_NO_SYNC).rowcount == 1

    def update_pickup(
        self,
        request_id: str,
        pickup: tuple[float, float],
        estimate: FareEstimate | None,
        now: datetime,
    ) -> bool:
        stmt = (
            update(RideRequestRow)
            .where(
                RideRequestRow.id == request_id,
                RideRequestRow.status == OPEN,
                RideRequestRow.expires_at > now,
            )
            .values(
                pickup_location=format_location(pickup),
                updated_at=now,
                **self._estimate_columns(estimate),
            )
        )
        return self.session.execute(stmt, execution_options=_NO_SYNC).rowcount == 1

    def retire_lapsed(
        self,
        now: datetime,
        rider_id: str | None = None,
        request_id: str | None = None,
    ) -> list[str]:
        """Mark open requests whose expiry has passed as expired. Returns their ids."""
        stmt = update(RideRequestRow).where(
            RideRequestRow.status == OPEN,
            RideRequestRow.expires_at <= now,
        )
        if rider_id is not None:
            stmt = stmt.where(RideRequestRow.rider_id == rider_id)
        if request_id is not None:
            stmt = stmt.where(RideRequestRow.id == request_id)
        stmt = stmt.values(
            status=RequestStatus.EXPIRED.value, is_active=False, updated_at=now
        ).returning(RideRequestRow.id)
        return list(self.session.execute(stmt, execution_options=_NO_SYNC).scalars().all())

    def list_by_ids(self, request_ids: list[str]) -> list[RideRequest]:
        if not request_ids:
            return []
        stmt = select(RideRequestRow).where(RideRequestRow.id.in_(request_ids))
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def list_open(self, now: datetime) -> list[RideRequest]:
        """Open requests that have not lapsed yet."""
        stmt = (
            select(RideRequestRow)
            .where(RideRequestRow.status == OPEN, RideRequestRow.expires_at > now)
            .order_by(RideRequestRow.created_at)
        )
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def list_by_rider(self, rider_id: str) -> list[RideRequest]:
        stmt = (
            select(RideRequestRow)
            .where(RideRequestRow.rider_id == rider_id)
            .order_by(RideRequestRow.created_at.desc())
        )
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def count(
        self,
        rider_id: str | None = None,
        status: RequestStatus | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(RideRequestRow)
        if rider_id is not None:
            stmt = stmt.where(RideRequestRow.rider_id == rider_id)
        if status is not None:
            stmt = stmt.where(RideRequestRow.status == status.value)
        return self.session.execute(stmt).scalar() or 0

    def count_by_class(self, rider_id: str | None = None) -> dict[str, int]:
        stmt = select(RideRequestRow.ride_class, func.count()).group_by(
            RideRequestRow.ride_class
        )
        if rider_id is not None:
            stmt = stmt.where(RideRequestRow.rider_id == rider_id)
        return {ride_class: n for ride_class, n in self.session.execute(stmt).all()}

    def averages(self, rider_id: str | None = None) -> tuple[float, float]:
        """Average estimated distance (km) and fare over requests with an estimate."""
        stmt = select(
            func.avg(RideRequestRow.estimated_distance_km),
            func.avg(RideRequestRow.estimated_fare),
        )
        if rider_id is not None:
            stmt = stmt.where(RideRequestRow.rider_id == rider_id)
        avg_distance, avg_fare = self.session.execute(stmt).one()
        return float(avg_distance or 0.0), float(avg_fare or 0.0)

    @staticmethod
    def _estimate_columns(estimate: FareEstimate | None) -> dict[str, float | None]:
        if estimate is None:
            return {
                "estimated_distance_km": None,
                "estimated_duration_min": None,
                "base_fare": None,
                "surge_multiplier": None,
                "estimated_fare": None,
            }
        return {
            "estimated_distance_km": estimate.distance_km,
            "estimated_duration_min": estimate.duration_min,
            "base_fare": estimate.base_fare,
            "surge_multiplier": estimate.surge_multiplier,
            "estimated_fare": estimate.total_fare,
        }

    def _to_domain(self, row: RideRequestRow) -> RideRequest:
        """Convert ORM model to domain model."""
        estimate = None
        if row.estimated_fare is not None:
            estimate = FareEstimate(
                distance_km=row.estimated_distance_km or 0.0,
                duration_min=row.estimated_duration_min or 0.0,
                base_fare=row.base_fare or 0.0,
                surge_multiplier=row.surge_multiplier or 1.0,
                total_fare=row.estimated_fare,
            )
        return RideRequest(
            id=row.id,
            rider_id=row.rider_id,
            pickup=parse_location(row.pickup_location),
            destination=parse_location(row.destination_location),
            ride_class=RideClass(row.ride_class),
            max_wait_seconds=row.max_wait_seconds,
            ttl_seconds=row.ttl_seconds,
            created_at=row.created_at,
            expires_at=row.expires_at,
            status=RequestStatus(row.status),
            claimed_by=row.claimed_by,
            claimed_at=row.claimed_at,
            fare_estimate=estimate,
        )
