"""Delivers matching outcomes to drivers and riders over real-time channels."""

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from ridedispatch.db.utils import utc_now
from ridedispatch.realtime.channels import (
    DriverMatchedMessage,
    NoDriversFoundMessage,
    OfferAcceptedMessage,
    OfferMessage,
    OfferUnavailableMessage,
    RequestExpiredMessage,
    driver_channel,
    rider_channel,
)
from ridedispatch.realtime.publisher import RealtimeChannel
from ridedispatch.ride_requests.models import RideRequest
from ridedispatch.rides.ride import Ride

from .driver_geospatial_index import NearbyDriver

logger = logging.getLogger(__name__)


class NotificationDispatch:
    """Dispatches notifications to driver and rider channels.

    Delivery is best-effort: failures are logged and reported as False,
    never raised to the matching flow.
    """

    def __init__(
        self,
        channel: RealtimeChannel,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._channel = channel
        self._clock = clock

    async def send_offer(self, request: RideRequest, candidate: NearbyDriver) -> bool:
        """Offer a request to one candidate driver."""
        estimate = request.fare_estimate
        message = OfferMessage(
            request_id=request.id,
            rider_id=request.rider_id,
            pickup=request.pickup,
            destination=request.destination,
            ride_class=request.ride_class.value,
            distance_to_pickup_km=candidate.distance_km,
            estimated_fare=estimate.total_fare if estimate else None,
            expires_at=request.expires_at.isoformat(),
        )
        try:
            await self._channel.publish(
                driver_channel(candidate.driver_id), message.model_dump(mode="json")
            )
            return True
        except Exception as e:
            logger.warning(f"Offer for {request.id} to driver {candidate.driver_id} failed: {e}")
            return False

    async def send_offers(
        self, request: RideRequest, candidates: list[NearbyDriver]
    ) -> list[str]:
        """Offer a request to all candidates concurrently. Returns drivers reached."""
        results = await asyncio.gather(
            *(self.send_offer(request, c) for c in candidates),
            return_exceptions=True,
        )
        return [c.driver_id for c, ok in zip(candidates, results, strict=True) if ok is True]

    async def notify_rider_no_drivers(self, request: RideRequest) -> None:
        message = NoDriversFoundMessage(request_id=request.id, timestamp=self._timestamp())
        try:
            await self._channel.publish(
                rider_channel(request.rider_id), message.model_dump(mode="json")
            )
        except Exception as e:
            logger.warning(f"No-drivers notice for {request.id} failed: {e}")

    def notify_rider_match(self, ride: Ride) -> None:
        message = DriverMatchedMessage(
            request_id=ride.request_id,
            ride_id=ride.id,
            driver_id=ride.driver_id or "",
            timestamp=self._timestamp(),
        )
        self._publish(rider_channel(ride.rider_id), message.model_dump(mode="json"))

    def notify_offer_accepted(self, ride: Ride) -> None:
        if ride.driver_id is None:
            return
        message = OfferAcceptedMessage(
            request_id=ride.request_id, ride_id=ride.id, timestamp=self._timestamp()
        )
        self._publish(driver_channel(ride.driver_id), message.model_dump(mode="json"))

    def notify_offer_unavailable(
        self, request_id: str, driver_ids: Iterable[str], reason: str
    ) -> None:
        """Tell candidates an offer is gone so they return to availability."""
        message = OfferUnavailableMessage(
            request_id=request_id, reason=reason, timestamp=self._timestamp()
        ).model_dump(mode="json")
        for driver_id in driver_ids:
            self._publish(driver_channel(driver_id), message)

    def notify_request_expired(self, request: RideRequest) -> None:
        message = RequestExpiredMessage(request_id=request.id, timestamp=self._timestamp())
        self._publish(rider_channel(request.rider_id), message.model_dump(mode="json"))

    def _publish(self, channel: str, message: dict) -> None:
        try:
            self._channel.publish_sync(channel, message)
        except Exception as e:
            logger.warning(f"Notification to {channel} failed: {e}")

    def _timestamp(self) -> str:
        return self._clock().isoformat()
