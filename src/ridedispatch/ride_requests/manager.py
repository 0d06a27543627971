"""Ride request lifecycle: creation, cancellation, expiry and pickup correction."""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ridedispatch.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    RoutingUnavailableError,
    StaleDataError,
    ValidationError,
)
from ridedispatch.db.repositories.ride_request_repository import RideRequestRepository
from ridedispatch.db.transaction import transaction
from ridedispatch.db.utils import utc_now
from ridedispatch.dispatch_logging.context import log_request_context
from ridedispatch.geo.distance import distance_km, validate_coordinate
from ridedispatch.pricing.fare import FareEstimator
from ridedispatch.pricing.models import FareEstimate, RideClass
from ridedispatch.settings import RequestSettings

from .models import RequestStatus, RideRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NearbyRequest:
    request: RideRequest
    distance_km: float


class RideRequestStats(BaseModel):
    total_requests: int
    active_requests: int
    expired_requests: int
    requests_by_class: dict[str, int]
    average_distance_km: float
    average_fare: float
    active_surge_zones: int


class RideRequestManager:
    """Owns ride requests from creation until they are claimed, cancelled or expired.

    Invariant: a rider has at most one request that is open and unexpired.
    Lapsed requests are retired before a new one is inserted, and a partial
    unique index on active requests rejects any concurrent duplicate.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        estimator: FareEstimator,
        settings: RequestSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._estimator = estimator
        self._settings = settings or RequestSettings()
        self._clock = clock

    async def create(
        self,
        rider_id: str,
        pickup: tuple[float, float],
        destination: tuple[float, float],
        ride_class: RideClass | str = RideClass.ECONOMY,
        max_wait_seconds: int | None = None,
        ttl_seconds: int | None = None,
    ) -> RideRequest:
        pickup = validate_coordinate(pickup, "pickup")
        destination = validate_coordinate(destination, "destination")
        ride_class = RideClass.parse(ride_class)
        max_wait = max_wait_seconds
        if max_wait is None:
            max_wait = self._settings.default_max_wait_seconds
        ttl = self._settings.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if max_wait <= 0 or ttl <= 0:
            raise ValidationError(
                "max_wait_seconds and ttl_seconds must be positive",
                details={"max_wait_seconds": max_wait, "ttl_seconds": ttl},
            )

        # Cheap early rejection before spending a routing call
        if await asyncio.to_thread(self.get_active_for_rider, rider_id) is not None:
            raise self._duplicate_error(rider_id)

        now = self._clock()
        estimate = await self._estimate_or_none(pickup, destination, ride_class, now)

        request = RideRequest(
            id=str(uuid4()),
            rider_id=rider_id,
            pickup=pickup,
            destination=destination,
            ride_class=ride_class,
            max_wait_seconds=max_wait,
            ttl_seconds=ttl,
            created_at=now,
            expires_at=now + timedelta(seconds=min(max_wait, ttl)),
            fare_estimate=estimate,
        )
        await asyncio.to_thread(self._insert, request)

        with log_request_context(request.id, rider_id=rider_id):
            logger.info(
                f"Ride request created ({ride_class.value}), expires at "
                f"{request.expires_at.isoformat()}"
            )
        return request

    def _insert(self, request: RideRequest) -> None:
        with self._session_factory() as session:
            try:
                with transaction(session):
                    repo = RideRequestRepository(session)
                    repo.retire_lapsed(request.created_at, rider_id=request.rider_id)
                    repo.add(request)
            except IntegrityError as e:
                raise self._duplicate_error(request.rider_id) from e

    def cancel(self, request_id: str) -> RideRequest:
        now = self._clock()
        with self._session_factory() as session, transaction(session):
            repo = RideRequestRepository(session)
            cancelled = repo.cancel(request_id, now)
            retired = [] if cancelled else repo.retire_lapsed(now, request_id=request_id)

        request = self.get(request_id)
        if cancelled:
            logger.info(f"Ride request {request_id} cancelled")
            return request
        raise self._not_open_error(request, lapsed=bool(retired))

    def expire(self, now: datetime | None = None) -> list[RideRequest]:
        """Retire every open request whose expiry has passed."""
        now = now or self._clock()
        with self._session_factory() as session, transaction(session):
            repo = RideRequestRepository(session)
            expired_ids = repo.retire_lapsed(now)
            expired = repo.list_by_ids(expired_ids)

        if expired:
            logger.info(f"Expired {len(expired)} ride requests")
        return expired

    def expire_one(self, request_id: str, now: datetime | None = None) -> RideRequest | None:
        """Retire a single request if it is open and lapsed at ``now``."""
        now = now or self._clock()
        with self._session_factory() as session, transaction(session):
            repo = RideRequestRepository(session)
            if not repo.retire_lapsed(now, request_id=request_id):
                return None
            return repo.get(request_id)

    async def update_pickup(
        self, request_id: str, new_pickup: tuple[float, float]
    ) -> RideRequest:
        """Move the pickup and re-price; pickup and estimate change together or not at all."""
        new_pickup = validate_coordinate(new_pickup, "pickup")
        request = await asyncio.to_thread(self.get, request_id)
        now = self._clock()
        if not request.is_open_at(now):
            await asyncio.to_thread(self._reject_closed, request, now)

        estimate = await self._estimate_or_none(
            new_pickup, request.destination, request.ride_class, now
        )

        request = await asyncio.to_thread(self._apply_pickup, request_id, new_pickup, estimate)
        logger.info(f"Ride request {request_id} pickup moved to {new_pickup}")
        return request

    def _reject_closed(self, request: RideRequest, now: datetime) -> None:
        lapsed = request.is_active and self.expire_one(request.id, now) is not None
        raise self._not_open_error(self.get(request.id), lapsed=lapsed)

    def _apply_pickup(
        self,
        request_id: str,
        new_pickup: tuple[float, float],
        estimate: FareEstimate | None,
    ) -> RideRequest:
        now = self._clock()
        with self._session_factory() as session, transaction(session):
            repo = RideRequestRepository(session)
            updated = repo.update_pickup(request_id, new_pickup, estimate, now)
            retired = [] if updated else repo.retire_lapsed(now, request_id=request_id)

        request = self.get(request_id)
        if not updated:
            raise self._not_open_error(request, lapsed=bool(retired))
        return request

    def get(self, request_id: str) -> RideRequest:
        with self._session_factory() as session:
            request = RideRequestRepository(session).get(request_id)
        if request is None:
            raise NotFoundError(
                f"Ride request {request_id} not found", details={"request_id": request_id}
            )
        return request

    def get_active_for_rider(self, rider_id: str) -> RideRequest | None:
        """The rider's open, unexpired request, if any."""
        with self._session_factory() as session:
            request = RideRequestRepository(session).get_active_for_rider(rider_id)
        if request is None or request.is_expired(self._clock()):
            return None
        return request

    def find_nearby_for_driver(
        self,
        driver_location: tuple[float, float],
        radius_km: float | None = None,
        limit: int | None = None,
        exclude_ids: Iterable[str] = (),
    ) -> list[NearbyRequest]:
        """Open, unexpired requests whose pickup is within the radius, nearest first."""
        driver_location = validate_coordinate(driver_location, "driver_location")
        radius_km = radius_km or self._settings.nearby_radius_km
        limit = limit or self._settings.nearby_limit
        excluded = set(exclude_ids)

        with self._session_factory() as session:
            open_requests = RideRequestRepository(session).list_open(self._clock())

        nearby = []
        for request in open_requests:
            if request.id in excluded:
                continue
            distance = distance_km(driver_location, request.pickup)
            if distance <= radius_km:
                nearby.append(NearbyRequest(request=request, distance_km=round(distance, 3)))
        nearby.sort(key=lambda n: n.distance_km)
        return nearby[:limit]

    def stats(self, rider_id: str | None = None) -> RideRequestStats:
        with self._session_factory() as session:
            repo = RideRequestRepository(session)
            total = repo.count(rider_id)
            active = repo.count(rider_id, RequestStatus.OPEN)
            expired = repo.count(rider_id, RequestStatus.EXPIRED)
            by_class = repo.count_by_class(rider_id)
            avg_distance, avg_fare = repo.averages(rider_id)

        return RideRequestStats(
            total_requests=total,
            active_requests=active,
            expired_requests=expired,
            requests_by_class=by_class,
            average_distance_km=round(avg_distance, 2),
            average_fare=round(avg_fare, 2),
            active_surge_zones=len(self._estimator.surge_index.active_zones(self._clock())),
        )

    async def _estimate_or_none(
        self,
        pickup: tuple[float, float],
        destination: tuple[float, float],
        ride_class: RideClass,
        at: datetime,
    ) -> FareEstimate | None:
        try:
            return await self._estimator.estimate(pickup, destination, ride_class, at=at)
        except RoutingUnavailableError as e:
            logger.warning(f"Proceeding without fare estimate: {e.message}")
            return None

    @staticmethod
    def _duplicate_error(rider_id: str) -> ConflictError:
        return ConflictError(
            "Rider already has an active ride request", details={"rider_id": rider_id}
        )

    @staticmethod
    def _not_open_error(request: RideRequest, lapsed: bool) -> InvalidStateError:
        details: dict[str, Any] = {"request_id": request.id, "status": request.status.value}
        if lapsed or request.status == RequestStatus.EXPIRED:
            return StaleDataError(f"Ride request {request.id} has expired", details=details)
        return InvalidStateError(
            f"Ride request {request.id} is {request.status.value}", details=details
        )
