"""Persisted ride transitions."""

import logging
from collections.abc import Callable
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy.orm import Session, sessionmaker

from ridedispatch.core.exceptions import ConflictError, NotFoundError, ValidationError
from ridedispatch.db.repositories.ride_repository import RideRepository
from ridedispatch.db.repositories.tracking_repository import TrackingRepository
from ridedispatch.db.transaction import transaction
from ridedispatch.db.utils import utc_now
from ridedispatch.dispatch_logging.context import log_ride_context
from ridedispatch.geo.distance import path_length_km
from ridedispatch.ride_requests.models import RideRequest
from ridedispatch.tracking.broadcaster import TrackingBroadcaster

from .ride import ACTIVE_STATUSES, CancelledBy, Ride, RideStatus

logger = logging.getLogger(__name__)


class RideStats(BaseModel):
    user_id: str
    is_driver: bool
    total_rides: int
    active_rides: int
    completed_rides: int
    cancelled_rides: int
    total_fare: float
    total_distance_km: float
    total_duration_min: float
    average_distance_km: float


class RideLifecycle:
    """The only writer of a ride once it has been opened.

    Each transition is validated against the transition table in memory and
    then persisted with a conditional update on the status it was read in,
    so two racing transitions cannot both succeed.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        broadcaster: TrackingBroadcaster,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._broadcaster = broadcaster
        self._clock = clock

    def open_ride(
        self,
        session: Session,
        request: RideRequest,
        driver_id: str,
        at: datetime,
    ) -> Ride:
        """Create the ride for a freshly claimed request inside the caller's transaction."""
        estimate = request.fare_estimate
        ride = Ride(
            id=str(uuid4()),
            request_id=request.id,
            rider_id=request.rider_id,
            driver_id=driver_id,
            pickup=request.pickup,
            destination=request.destination,
            ride_class=request.ride_class,
            fare_amount=estimate.total_fare if estimate else None,
            distance_km=estimate.distance_km if estimate else None,
            duration_min=estimate.duration_min if estimate else None,
            requested_at=request.created_at,
        )
        ride.transition_to(RideStatus.ACCEPTED, at)
        RideRepository(session).create(ride)
        return ride

    def transition(
        self,
        ride_id: str,
        target: RideStatus | str,
        cancelled_by: CancelledBy | None = None,
        reason: str | None = None,
    ) -> Ride:
        try:
            target = RideStatus(target)
        except ValueError as e:
            raise ValidationError(f"Unknown ride status {target!r}") from e
        now = self._clock()

        with self._session_factory() as session, transaction(session):
            repo = RideRepository(session)
            ride = repo.get(ride_id)
            if ride is None:
                raise NotFoundError(f"Ride {ride_id} not found", details={"ride_id": ride_id})

            expected = ride.status
            if target == RideStatus.CANCELLED:
                ride.cancel(cancelled_by or "system", reason, now)
            else:
                ride.transition_to(target, now)

            if target == RideStatus.COMPLETED:
                points = TrackingRepository(session).list_for_ride(ride_id)
                if len(points) >= 2:
                    ride.distance_km = round(path_length_km([p.location for p in points]), 3)

            if not repo.update_status(ride, expected):
                raise ConflictError(
                    f"Ride {ride_id} changed concurrently",
                    details={"ride_id": ride_id, "expected": expected.value},
                )

        with log_ride_context(ride_id, driver_id=ride.driver_id, rider_id=ride.rider_id):
            logger.info(f"Ride {expected.value} -> {ride.status.value}")
        self._broadcaster.publish_status(ride)
        return ride

    def cancel(
        self, ride_id: str, cancelled_by: CancelledBy, reason: str | None = None
    ) -> Ride:
        return self.transition(ride_id, RideStatus.CANCELLED, cancelled_by, reason)

    def get(self, ride_id: str) -> Ride:
        with self._session_factory() as session:
            ride = RideRepository(session).get(ride_id)
        if ride is None:
            raise NotFoundError(f"Ride {ride_id} not found", details={"ride_id": ride_id})
        return ride

    def get_for_request(self, request_id: str) -> Ride | None:
        with self._session_factory() as session:
            return RideRepository(session).get_by_request(request_id)

    def announce(self, ride: Ride) -> None:
        """Publish the current status of a ride opened outside :meth:`transition`."""
        self._broadcaster.publish_status(ride)

    def list_for_rider(self, rider_id: str) -> list[Ride]:
        with self._session_factory() as session:
            return RideRepository(session).list_by_rider(rider_id)

    def list_for_driver(self, driver_id: str) -> list[Ride]:
        with self._session_factory() as session:
            return RideRepository(session).list_by_driver(driver_id)

    def stats(self, user_id: str, is_driver: bool = False) -> RideStats:
        """Ride counts for a rider (or driver) and totals over their completed rides."""
        with self._session_factory() as session:
            repo = RideRepository(session)
            by_status = repo.count_by_status(user_id, is_driver)
            fare, distance, duration, avg_distance = repo.completed_totals(user_id, is_driver)

        return RideStats(
            user_id=user_id,
            is_driver=is_driver,
            total_rides=sum(by_status.values()),
            active_rides=sum(by_status.get(s.value, 0) for s in ACTIVE_STATUSES),
            completed_rides=by_status.get(RideStatus.COMPLETED.value, 0),
            cancelled_rides=by_status.get(RideStatus.CANCELLED.value, 0),
            total_fare=round(fare, 2),
            total_distance_km=round(distance, 3),
            total_duration_min=round(duration, 1),
            average_distance_km=round(avg_distance, 2),
        )
