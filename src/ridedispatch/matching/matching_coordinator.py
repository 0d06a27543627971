"""Offers ride requests to nearby drivers and settles the race to accept them."""

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ridedispatch.core.correlation import with_correlation
from ridedispatch.core.exceptions import (
    AlreadyCancelledError,
    AlreadyMatchedError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StaleDataError,
)
from ridedispatch.db.repositories.ride_request_repository import RideRequestRepository
from ridedispatch.db.transaction import transaction
from ridedispatch.db.utils import utc_now
from ridedispatch.dispatch_logging.context import log_request_context
from ridedispatch.ride_requests.manager import NearbyRequest, RideRequestManager
from ridedispatch.ride_requests.models import RequestStatus, RideRequest
from ridedispatch.rides.lifecycle import RideLifecycle
from ridedispatch.rides.ride import Ride
from ridedispatch.settings import MatchingSettings

from .driver_geospatial_index import DriverGeospatialIndex, NearbyDriver
from .notification_dispatch import NotificationDispatch
from .offer_timeout import OfferTimeoutManager

logger = logging.getLogger(__name__)


class MatchingCoordinator:
    """Matches ride requests to drivers.

    The accept-once guarantee does not rely on any in-process lock: a claim
    is a single conditional UPDATE on the request row, and only the caller
    whose UPDATE changed the row opens a ride. The in-memory state here
    (offered and declined drivers, counters) is advisory.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        driver_index: DriverGeospatialIndex,
        request_manager: RideRequestManager,
        lifecycle: RideLifecycle,
        notifications: NotificationDispatch,
        settings: MatchingSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._driver_index = driver_index
        self._requests = request_manager
        self._lifecycle = lifecycle
        self._notifications = notifications
        self._settings = settings or MatchingSettings()
        self._clock = clock
        self._timeouts = OfferTimeoutManager(self._on_request_timeout, clock)

        self._state_lock = threading.RLock()
        self._offered: dict[str, set[str]] = {}
        self._declined: dict[str, set[str]] = {}
        self._declined_by_driver: dict[str, set[str]] = {}

        self._offers_sent = 0
        self._offers_accepted = 0
        self._offers_declined = 0
        self._offers_expired = 0
        self._no_driver_outcomes = 0

    @property
    def timeouts(self) -> OfferTimeoutManager:
        return self._timeouts

    async def dispatch(self, request_or_id: RideRequest | str) -> list[NearbyDriver]:
        """Offer an open request to nearby drivers.

        Returns the candidates that were offered the request, or an empty
        list (after telling the rider) when no driver could be found.
        """
        request_id = request_or_id.id if isinstance(request_or_id, RideRequest) else request_or_id
        request = await asyncio.to_thread(self._requests.get, request_id)
        now = self._clock()

        with (
            with_correlation(request.id),
            log_request_context(request.id, rider_id=request.rider_id),
        ):
            if not request.is_active:
                raise InvalidStateError(
                    f"Ride request {request.id} is {request.status.value}",
                    details={"request_id": request.id, "status": request.status.value},
                )
            if request.is_expired(now):
                await asyncio.to_thread(self._expire_lapsed, request.id, now)
                raise StaleDataError(
                    f"Ride request {request.id} has expired", details={"request_id": request.id}
                )

            candidates = self._search(request)
            if not candidates:
                with self._state_lock:
                    self._no_driver_outcomes += 1
                logger.info("No drivers found for ride request")
                await self._notifications.notify_rider_no_drivers(request)
                return []

            with self._state_lock:
                self._offered.setdefault(request.id, set()).update(c.driver_id for c in candidates)
                self._offers_sent += len(candidates)

            # Armed before fan-out so an accept that lands mid-send clears it
            self._timeouts.start_offer_timeout(request.id, request.expires_at)
            reached = await self._notifications.send_offers(request, candidates)
            logger.info(
                f"Offered request to {len(candidates)} drivers "
                f"({len(reached)} reached): {[c.driver_id for c in candidates]}"
            )
            return candidates

    def accept(self, request_id: str, driver_id: str) -> Ride:
        """Claim the request for ``driver_id`` and open its ride.

        Safe to call from many threads at once; exactly one driver wins.

        Raises:
            NotFoundError: unknown request.
            AlreadyMatchedError: another driver already won.
            AlreadyCancelledError: the rider cancelled first.
            StaleDataError: the request lapsed.
            ConflictError: the driver already has an active ride.
        """
        now = self._clock()
        with with_correlation(request_id), log_request_context(request_id, driver_id=driver_id):
            ride: Ride | None = None
            with self._session_factory() as session:
                try:
                    with transaction(session):
                        repo = RideRequestRepository(session)
                        # Compare-and-swap; must stay the first statement of the transaction
                        if repo.claim(request_id, driver_id, now):
                            request = repo.get(request_id)
                            if request is None:
                                raise NotFoundError(
                                    f"Ride request {request_id} not found",
                                    details={"request_id": request_id},
                                )
                            ride = self._lifecycle.open_ride(session, request, driver_id, now)
                except IntegrityError as e:
                    logger.info("Claim rolled back: driver already has an active ride")
                    raise ConflictError(
                        f"Driver {driver_id} already has an active ride",
                        details={"driver_id": driver_id, "request_id": request_id},
                    ) from e

            if ride is None:
                return self._resolve_lost_claim(request_id, driver_id, now)

            logger.info(f"Driver won request, ride {ride.id} opened")
            self._on_matched(ride)
            return ride

    def decline(self, request_id: str, driver_id: str) -> None:
        """Exclude the driver from further offers and listings of this request."""
        self._requests.get(request_id)
        with self._state_lock:
            self._declined.setdefault(request_id, set()).add(driver_id)
            self._declined_by_driver.setdefault(driver_id, set()).add(request_id)
            offered = self._offered.get(request_id)
            if offered is not None and driver_id in offered:
                offered.discard(driver_id)
            self._offers_declined += 1
        logger.info(f"Driver {driver_id} declined request {request_id}")

    async def cancel_request(self, request_id: str) -> RideRequest:
        """Cancel through the request manager and withdraw outstanding offers."""
        return await asyncio.to_thread(self._cancel, request_id)

    def _cancel(self, request_id: str) -> RideRequest:
        request = self._requests.cancel(request_id)
        self._timeouts.clear_offer(request_id, "cancelled")
        offered = self._forget(request_id)
        self._notifications.notify_offer_unavailable(request_id, offered, "cancelled")
        return request

    def sweep_expired(self) -> list[RideRequest]:
        """Retire lapsed requests and notify the affected parties."""
        expired = self._requests.expire()
        for request in expired:
            self._timeouts.clear_offer(request.id, "expired")
            self._after_expiry(request)
        return expired

    def nearby_requests_for_driver(
        self,
        driver_id: str,
        radius_km: float | None = None,
        limit: int | None = None,
    ) -> list[NearbyRequest]:
        presence = self._driver_index.get_presence(driver_id)
        if presence is None:
            raise NotFoundError(
                f"No presence reported for driver {driver_id}", details={"driver_id": driver_id}
            )
        return self._requests.find_nearby_for_driver(
            presence.location, radius_km, limit, exclude_ids=self.declined_requests(driver_id)
        )

    def declined_drivers(self, request_id: str) -> set[str]:
        with self._state_lock:
            return set(self._declined.get(request_id, ()))

    def declined_requests(self, driver_id: str) -> set[str]:
        with self._state_lock:
            return set(self._declined_by_driver.get(driver_id, ()))

    def offered_drivers(self, request_id: str) -> set[str]:
        with self._state_lock:
            return set(self._offered.get(request_id, ()))

    def get_matching_stats(self) -> dict[str, Any]:
        """Get matching outcome statistics for metrics."""
        with self._state_lock:
            return {
                "offers_sent": self._offers_sent,
                "offers_accepted": self._offers_accepted,
                "offers_declined": self._offers_declined,
                "offers_expired": self._offers_expired,
                "no_driver_outcomes": self._no_driver_outcomes,
                "pending_timers": self._timeouts.pending_count(),
            }

    def shutdown(self) -> None:
        self._timeouts.cancel_all()

    def _search(self, request: RideRequest) -> list[NearbyDriver]:
        """Search around the pickup, widening the radius while too few drivers are found."""
        settings = self._settings
        excluded = self.declined_drivers(request.id)
        radius = settings.base_radius_km
        candidates: list[NearbyDriver] = []

        for attempt in range(settings.max_radius_escalations + 1):
            candidates = self._driver_index.find_nearby(
                request.pickup, radius, settings.max_candidates, exclude=excluded
            )
            if len(candidates) >= settings.min_candidates:
                break
            next_radius = min(radius * settings.escalation_factor, settings.max_radius_km)
            if attempt == settings.max_radius_escalations or next_radius <= radius:
                break
            logger.debug(
                f"{len(candidates)} drivers within {radius:.1f} km, "
                f"widening to {next_radius:.1f} km"
            )
            radius = next_radius
        return candidates

    def _resolve_lost_claim(self, request_id: str, driver_id: str, now: datetime) -> Ride:
        request = self._requests.get(request_id)

        if request.status == RequestStatus.CLAIMED:
            if request.claimed_by == driver_id:
                ride = self._lifecycle.get_for_request(request_id)
                if ride is not None:
                    logger.debug("Repeated accept by the winning driver")
                    return ride
            raise AlreadyMatchedError(
                "ride already taken",
                details={"request_id": request_id, "driver_id": driver_id},
            )
        if request.status == RequestStatus.CANCELLED:
            raise AlreadyCancelledError(
                f"Ride request {request_id} was cancelled", details={"request_id": request_id}
            )
        if request.status == RequestStatus.OPEN:
            self._expire_lapsed(request_id, now)
        raise StaleDataError(
            f"Ride request {request_id} has expired", details={"request_id": request_id}
        )

    def _on_matched(self, ride: Ride) -> None:
        self._timeouts.clear_offer(ride.request_id, "accepted")
        others = self._forget(ride.request_id) - {ride.driver_id}
        with self._state_lock:
            self._offers_accepted += 1

        self._notifications.notify_rider_match(ride)
        self._notifications.notify_offer_accepted(ride)
        self._notifications.notify_offer_unavailable(ride.request_id, others, "taken")
        self._lifecycle.announce(ride)

    def _on_request_timeout(self, request_id: str, expires_at: datetime) -> None:
        # The timer firing means the deadline passed, even if the clock lags slightly
        now = max(self._clock(), expires_at)
        request = self._requests.expire_one(request_id, now)
        if request is None:
            return
        self._after_expiry(request)

    def _expire_lapsed(self, request_id: str, now: datetime) -> None:
        request = self._requests.expire_one(request_id, now)
        if request is None:
            return
        self._timeouts.clear_offer(request_id, "expired")
        self._after_expiry(request)

    def _after_expiry(self, request: RideRequest) -> None:
        offered = self._forget(request.id)
        with self._state_lock:
            self._offers_expired += len(offered)
        with log_request_context(request.id, rider_id=request.rider_id):
            logger.info("Ride request expired without a match")
        self._notifications.notify_request_expired(request)
        self._notifications.notify_offer_unavailable(request.id, offered, "expired")

    def _forget(self, request_id: str) -> set[str]:
        """Drop per-request state. Returns the drivers that were offered the request."""
        with self._state_lock:
            offered = self._offered.pop(request_id, set())
            for driver_id in self._declined.pop(request_id, set()):
                requests = self._declined_by_driver.get(driver_id)
                if requests is not None:
                    requests.discard(request_id)
                    if not requests:
                        del self._declined_by_driver[driver_id]
        return offered
