"""Wires the dispatch components together."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from ridedispatch.core.retry import RetryConfig
from ridedispatch.db.database import init_database
from ridedispatch.db.utils import utc_now
from ridedispatch.geo.osrm_client import OSRMClient
from ridedispatch.geo.routing import RoutingProvider
from ridedispatch.matching.driver_geospatial_index import DriverGeospatialIndex
from ridedispatch.matching.matching_coordinator import MatchingCoordinator
from ridedispatch.matching.notification_dispatch import NotificationDispatch
from ridedispatch.pricing.fare import FareEstimator, rates_from_settings
from ridedispatch.pricing.surge_zones import SurgeZoneIndex
from ridedispatch.realtime.publisher import RealtimeChannel, RedisPublisher
from ridedispatch.ride_requests.expiry import RequestExpirySweeper
from ridedispatch.ride_requests.manager import RideRequestManager
from ridedispatch.ride_requests.models import RideRequest
from ridedispatch.rides.lifecycle import RideLifecycle
from ridedispatch.settings import Settings
from ridedispatch.tracking.broadcaster import TrackingBroadcaster

logger = logging.getLogger(__name__)


@dataclass
class DispatchService:
    settings: Settings
    session_factory: sessionmaker[Session]
    channel: RealtimeChannel
    driver_index: DriverGeospatialIndex
    surge_index: SurgeZoneIndex
    estimator: FareEstimator
    requests: RideRequestManager
    broadcaster: TrackingBroadcaster
    lifecycle: RideLifecycle
    notifications: NotificationDispatch
    coordinator: MatchingCoordinator
    sweeper: RequestExpirySweeper = field(init=False)

    def __post_init__(self) -> None:
        self.sweeper = RequestExpirySweeper(
            self.sweep, interval_seconds=self.settings.requests.expiry_sweep_interval_seconds
        )

    def sweep(self) -> list[RideRequest]:
        """Retire lapsed requests and drop drivers that stopped reporting."""
        expired = self.coordinator.sweep_expired()
        self.driver_index.prune_stale()
        return expired

    async def start(self) -> None:
        self.surge_index.load()
        await self.sweeper.start()
        logger.info("Dispatch service started")

    async def stop(self) -> None:
        await self.sweeper.stop()
        self.coordinator.shutdown()
        await self.coordinator.timeouts.drain()
        close: Any = getattr(self.channel, "close", None)
        if callable(close):
            close()
        logger.info("Dispatch service stopped")


def build_service(
    settings: Settings,
    session_factory: sessionmaker[Session] | None = None,
    routing: RoutingProvider | None = None,
    channel: RealtimeChannel | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> DispatchService:
    """Build the full component graph. Collaborators can be injected for tests."""
    if session_factory is None:
        session_factory = init_database(
            settings.database.url,
            busy_timeout_seconds=settings.database.busy_timeout_seconds,
            echo=settings.database.echo,
        )
    if routing is None:
        routing = OSRMClient(settings.osrm.base_url, timeout=settings.osrm.timeout_seconds)
    if channel is None:
        channel = RedisPublisher(
            {
                "host": settings.redis.host,
                "port": settings.redis.port,
                "password": settings.redis.password,
                "ssl": settings.redis.ssl,
                "socket_timeout": settings.redis.socket_timeout_seconds,
                "socket_connect_timeout": settings.redis.socket_timeout_seconds,
            }
        )

    driver_index = DriverGeospatialIndex(
        h3_resolution=settings.matching.h3_resolution,
        staleness_seconds=settings.matching.presence_staleness_seconds,
        clock=clock,
    )
    surge_index = SurgeZoneIndex(session_factory=session_factory, clock=clock)
    estimator = FareEstimator(
        routing,
        surge_index,
        rates=rates_from_settings(settings.fare),
        retry_config=RetryConfig(
            max_attempts=settings.osrm.max_retries,
            base_delay=settings.osrm.retry_base_delay,
            multiplier=settings.osrm.retry_multiplier,
        ),
        timeout_seconds=settings.fare.estimate_timeout_seconds,
        clock=clock,
    )
    requests = RideRequestManager(session_factory, estimator, settings.requests, clock=clock)
    broadcaster = TrackingBroadcaster(session_factory, channel, clock=clock)
    lifecycle = RideLifecycle(session_factory, broadcaster, clock=clock)
    notifications = NotificationDispatch(channel, clock=clock)
    coordinator = MatchingCoordinator(
        session_factory,
        driver_index,
        requests,
        lifecycle,
        notifications,
        settings=settings.matching,
        clock=clock,
    )

    return DispatchService(
        settings=settings,
        session_factory=session_factory,
        channel=channel,
        driver_index=driver_index,
        surge_index=surge_index,
        estimator=estimator,
        requests=requests,
        broadcaster=broadcaster,
        lifecycle=lifecycle,
        notifications=notifications,
        coordinator=coordinator,
    )
