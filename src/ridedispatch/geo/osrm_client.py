import httpx
import polyline
from pydantic import BaseModel

from ridedispatch.core.exceptions import (
    NetworkError,
    ServiceUnavailableError,
    ValidationError,
)


class RouteResponse(BaseModel):
    distance_meters: float
    duration_seconds: float
    geometry: list[tuple[float, float]]
    osrm_code: str = "Ok"

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000.0

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60.0


class NoRouteFoundError(ValidationError):
    """No route found between coordinates. Inherits from ValidationError (non-retryable)."""

    pass


class OSRMServiceError(ServiceUnavailableError):
    """OSRM service error (5xx). Inherits from ServiceUnavailableError (retryable)."""

    pass


class OSRMTimeoutError(NetworkError):
    """OSRM request timeout. Inherits from NetworkError (retryable)."""

    pass


def decode_polyline(encoded: str, precision: int = 5) -> list[tuple[float, float]]:
    """Decode polyline string to list of (lat, lon) tuples."""
    coords = polyline.decode(encoded, precision)
    return [(lat, lon) for lat, lon in coords]


class OSRMClient:
    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def get_route(
        self, origin: tuple[float, float], destination: tuple[float, float]
    ) -> RouteResponse:
        """Get route between two coordinates using OSRM."""
        origin_lat, origin_lon = origin
        dest_lat, dest_lon = destination

        url = (
            f"{self.base_url}/route/v1/driving/"
            f"{origin_lon},{origin_lat};{dest_lon},{dest_lat}"
        )
        params = {"overview": "full", "geometries": "polyline"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)

                if response.status_code >= 500:
                    raise OSRMServiceError(f"OSRM server error: {response.status_code}")

                data = response.json()

                if data.get("code") == "NoRoute" or not data.get("routes"):
                    raise NoRouteFoundError(
                        "No route found between coordinates",
                        details={"origin": origin, "destination": destination},
                    )

                route = data["routes"][0]
                return RouteResponse(
                    distance_meters=float(route["distance"]),
                    duration_seconds=float(route["duration"]),
                    geometry=decode_polyline(route["geometry"]),
                    osrm_code=data["code"],
                )

        except httpx.TimeoutException as e:
            raise OSRMTimeoutError(f"Request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise OSRMServiceError(f"OSRM request failed: {e}") from e
