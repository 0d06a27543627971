"""Test doubles for the dispatch components' injectable seams."""

import threading
from datetime import datetime, timedelta
from typing import Any

from ridedispatch.core.exceptions import DispatchError
from ridedispatch.geo.osrm_client import RouteResponse

# Downtown Sao Paulo
PICKUP = (-23.5505, -46.6333)
DESTINATION = (-23.5870, -46.6570)


class FakeClock:
    """Manually advanced clock, injected wherever components take ``clock``."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2030, 1, 1, 8, 0, 0)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> datetime:
        with self._lock:
            self.now += timedelta(seconds=seconds)
            return self.now


class RecordingChannel:
    """Real-time channel double that keeps every published message."""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def publish_sync(self, channel: str, message: dict[str, Any]) -> None:
        with self._lock:
            self.published.append((channel, message))

    async def publish(self, channel: str, message: dict[str, Any]) -> None:
        self.publish_sync(channel, message)

    def on(self, channel: str) -> list[dict[str, Any]]:
        with self._lock:
            return [m for c, m in self.published if c == channel]

    def types(self, channel: str) -> list[str]:
        return [m["type"] for m in self.on(channel)]


class FakeRouting:
    """Routing provider returning a fixed route, or raising ``error``."""

    def __init__(
        self,
        distance_km: float = 10.0,
        duration_min: float = 20.0,
        error: DispatchError | None = None,
    ):
        self.distance_km = distance_km
        self.duration_min = duration_min
        self.error = error
        self.calls = 0

    async def get_route(
        self, origin: tuple[float, float], destination: tuple[float, float]
    ) -> RouteResponse:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return RouteResponse(
            distance_meters=self.distance_km * 1000,
            duration_seconds=self.duration_min * 60,
            geometry=[origin, destination],
        )


def offset_km(point: tuple[float, float], north_km: float) -> tuple[float, float]:
    """Point roughly ``north_km`` north of ``point``."""
    return (point[0] + north_km / 111.195, point[1])


def square(center: tuple[float, float], half_deg: float = 0.01) -> list[tuple[float, float]]:
    """Axis-aligned square boundary of (lat, lon) vertices around ``center``."""
    lat, lon = center
    return [
        (lat - half_deg, lon - half_deg),
        (lat - half_deg, lon + half_deg),
        (lat + half_deg, lon + half_deg),
        (lat + half_deg, lon - half_deg),
    ]


async def matched_ride(service, rider_id: str = "rider-1", driver_id: str = "driver-1"):
    """Create a request and have ``driver_id`` accept it. Returns the opened ride."""
    request = await service.requests.create(rider_id, PICKUP, DESTINATION)
    return service.coordinator.accept(request.id, driver_id)
