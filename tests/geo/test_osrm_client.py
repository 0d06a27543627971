import httpx
import pytest
import respx
from httpx import Response

from ridedispatch.geo.osrm_client import (
    NoRouteFoundError,
    OSRMClient,
    OSRMServiceError,
    OSRMTimeoutError,
    RouteResponse,
    decode_polyline,
)

ROUTE_PATTERN = r".*/route/v1/driving/.*"


@pytest.fixture
def osrm_client() -> OSRMClient:
    return OSRMClient(base_url="http://localhost:5000/")


@pytest.fixture
def valid_osrm_response() -> dict:
    return {
        "code": "Ok",
        "routes": [
            {
                "distance": 4521.0,
                "duration": 612.0,
                "geometry": "_p~iF~ps|U_ulLnnqC_mqNvxq`@",
            }
        ],
        "waypoints": [
            {"location": [-46.63, -23.55], "name": ""},
            {"location": [-46.64, -23.56], "name": ""},
        ],
    }


async def test_route_request_valid(osrm_client: OSRMClient, valid_osrm_response: dict):
    async with respx.mock:
        route = respx.route(path__regex=ROUTE_PATTERN).mock(
            return_value=Response(200, json=valid_osrm_response)
        )

        result = await osrm_client.get_route(origin=(-23.55, -46.63), destination=(-23.56, -46.64))

        assert route.called
        assert isinstance(result, RouteResponse)
        assert result.distance_km == pytest.approx(4.521)
        assert result.duration_minutes == pytest.approx(10.2)
        assert result.osrm_code == "Ok"
        assert len(result.geometry) > 0


async def test_request_uses_lon_lat_order(osrm_client: OSRMClient, valid_osrm_response: dict):
    async with respx.mock:
        route = respx.route(path__regex=ROUTE_PATTERN).mock(
            return_value=Response(200, json=valid_osrm_response)
        )

        await osrm_client.get_route(origin=(-23.55, -46.63), destination=(-23.56, -46.64))

        url = str(route.calls.last.request.url)
        assert "/route/v1/driving/-46.63,-23.55;-46.64,-23.56" in url
        assert "//route" not in url


def test_route_geometry_decoded():
    coords = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")

    assert coords[0] == pytest.approx((38.5, -120.2))
    assert all(len(coord) == 2 for coord in coords)


async def test_osrm_no_route_found(osrm_client: OSRMClient):
    async with respx.mock:
        respx.route(path__regex=ROUTE_PATTERN).mock(
            return_value=Response(200, json={"code": "NoRoute", "message": "Impossible route"})
        )

        with pytest.raises(NoRouteFoundError):
            await osrm_client.get_route(origin=(-23.55, -46.63), destination=(0.0, 0.0))


async def test_osrm_empty_routes_is_no_route(osrm_client: OSRMClient):
    async with respx.mock:
        respx.route(path__regex=ROUTE_PATTERN).mock(
            return_value=Response(200, json={"code": "Ok", "routes": []})
        )

        with pytest.raises(NoRouteFoundError):
            await osrm_client.get_route(origin=(-23.55, -46.63), destination=(-23.56, -46.64))


async def test_osrm_server_error(osrm_client: OSRMClient):
    async with respx.mock:
        respx.route(path__regex=ROUTE_PATTERN).mock(
            return_value=Response(503, text="Service Unavailable")
        )

        with pytest.raises(OSRMServiceError):
            await osrm_client.get_route(origin=(-23.55, -46.63), destination=(-23.56, -46.64))


async def test_osrm_timeout(osrm_client: OSRMClient):
    async with respx.mock:
        respx.route(path__regex=ROUTE_PATTERN).mock(
            side_effect=httpx.TimeoutException("Request timed out")
        )

        with pytest.raises(OSRMTimeoutError):
            await osrm_client.get_route(origin=(-23.55, -46.63), destination=(-23.56, -46.64))


async def test_osrm_network_error(osrm_client: OSRMClient):
    async with respx.mock:
        respx.route(path__regex=ROUTE_PATTERN).mock(
            side_effect=httpx.NetworkError("Connection failed")
        )

        with pytest.raises(OSRMServiceError):
            await osrm_client.get_route(origin=(-23.55, -46.63), destination=(-23.56, -46.64))


async def test_osrm_dropped_connection_is_service_error(osrm_client: OSRMClient):
    async with respx.mock:
        respx.route(path__regex=ROUTE_PATTERN).mock(
            side_effect=httpx.RemoteProtocolError("Server disconnected without sending a response.")
        )

        with pytest.raises(OSRMServiceError):
            await osrm_client.get_route(origin=(-23.55, -46.63), destination=(-23.56, -46.64))
