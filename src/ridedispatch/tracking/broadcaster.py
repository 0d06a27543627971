"""Live ride positions and status changes, fanned out to subscribers."""

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from ridedispatch.core.exceptions import InvalidStateError, NotFoundError
from ridedispatch.db.repositories.ride_repository import RideRepository
from ridedispatch.db.repositories.tracking_repository import TrackingRepository
from ridedispatch.db.transaction import transaction
from ridedispatch.db.utils import utc_now
from ridedispatch.geo.distance import validate_coordinate
from ridedispatch.realtime.channels import (
    LocationUpdateMessage,
    RideStatusMessage,
    ride_channel,
)
from ridedispatch.realtime.publisher import RealtimeChannel
from ridedispatch.rides.ride import Ride

from .models import TrackingPoint

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]


class Subscription:
    """Handle returned by :meth:`TrackingBroadcaster.subscribe`."""

    def __init__(self, ride_id: str, listener: Listener, broadcaster: "TrackingBroadcaster"):
        self.ride_id = ride_id
        self._listener = listener
        self._broadcaster = broadcaster
        self._finish_lock = threading.Lock()
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._broadcaster._unsubscribe(self)

    def deliver(self, message: dict[str, Any]) -> bool:
        if self.closed:
            return False
        try:
            self._listener(message)
            return True
        except Exception:
            logger.warning(
                f"Listener on ride {self.ride_id} failed, disconnecting it", exc_info=True
            )
            self.close()
            return False

    def finish(self, message: dict[str, Any]) -> None:
        """Deliver a final message once, then close."""
        with self._finish_lock:
            if self.closed:
                return
            self.deliver(message)
            self.close()


class TrackingBroadcaster:
    """Records tracking points for active rides and streams ride events.

    Every message goes to in-process subscribers and, best-effort, to the
    ride's real-time channel.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        channel: RealtimeChannel | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._channel = channel
        self._clock = clock
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()

    def record_point(
        self,
        ride_id: str,
        location: tuple[float, float],
        speed: float | None = None,
        heading: float | None = None,
        recorded_at: datetime | None = None,
    ) -> TrackingPoint | None:
        """Append a point if the ride is underway; otherwise ignore it and return None."""
        location = validate_coordinate(location)
        with self._session_factory() as session, transaction(session):
            ride = RideRepository(session).get(ride_id)
            if ride is None:
                raise NotFoundError(f"Ride {ride_id} not found", details={"ride_id": ride_id})
            if not ride.is_active:
                logger.debug(f"Ignoring tracking point for ride {ride_id} in {ride.status.value}")
                return None
            point = TrackingRepository(session).append(
                TrackingPoint(
                    ride_id=ride_id,
                    location=location,
                    speed_kmh=speed,
                    heading_deg=heading,
                    recorded_at=recorded_at or self._clock(),
                )
            )

        message = LocationUpdateMessage(
            ride_id=ride_id,
            location=point.location,
            speed_kmh=point.speed_kmh,
            heading_deg=point.heading_deg,
            recorded_at=point.recorded_at.isoformat(),
        )
        self._fan_out(ride_id, message.model_dump(mode="json"))
        return point

    def subscribe(self, ride_id: str, listener: Listener) -> Subscription:
        with self._session_factory() as session:
            ride = RideRepository(session).get(ride_id)
        if ride is None:
            raise NotFoundError(f"Ride {ride_id} not found", details={"ride_id": ride_id})
        if ride.is_terminal:
            raise InvalidStateError(
                f"Ride {ride_id} is already {ride.status.value}",
                details={"ride_id": ride_id, "status": ride.status.value},
            )

        subscription = Subscription(ride_id, listener, self)
        with self._lock:
            self._subscriptions.setdefault(ride_id, []).append(subscription)

        # The ride may have finished between the read above and registration
        with self._session_factory() as session:
            current = RideRepository(session).get(ride_id)
        if current is not None and current.is_terminal:
            subscription.finish(self._status_message(current))
        return subscription

    def publish_status(self, ride: Ride) -> None:
        """Send a status change; a terminal status also closes the ride's subscriptions."""
        self._fan_out(ride.id, self._status_message(ride), close_after=ride.is_terminal)

    def _status_message(self, ride: Ride) -> dict[str, Any]:
        message = RideStatusMessage(
            ride_id=ride.id,
            status=ride.status.value,
            driver_id=ride.driver_id,
            timestamp=self._clock().isoformat(),
        )
        return message.model_dump(mode="json")

    def get_points(self, ride_id: str) -> list[TrackingPoint]:
        with self._session_factory() as session:
            if RideRepository(session).get(ride_id) is None:
                raise NotFoundError(f"Ride {ride_id} not found", details={"ride_id": ride_id})
            return TrackingRepository(session).list_for_ride(ride_id)

    def subscriber_count(self, ride_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(ride_id, ()))

    def _fan_out(self, ride_id: str, message: dict[str, Any], close_after: bool = False) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions.get(ride_id, ()))

        for subscription in subscriptions:
            if close_after:
                subscription.finish(message)
            else:
                subscription.deliver(message)

        if self._channel is not None:
            try:
                self._channel.publish_sync(ride_channel(ride_id), message)
            except Exception:
                logger.exception(f"Failed to publish ride {ride_id} update")

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._subscriptions.get(subscription.ride_id)
            if not subscriptions:
                return
            if subscription in subscriptions:
                subscriptions.remove(subscription)
            if not subscriptions:
                del self._subscriptions[subscription.ride_id]
