"""Routing provider seam consumed by the fare estimator."""

from typing import Protocol

from .osrm_client import RouteResponse


class RoutingProvider(Protocol):
    async def get_route(
        self, origin: tuple[float, float], destination: tuple[float, float]
    ) -> RouteResponse: ...
