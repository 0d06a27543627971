"""Driver presence and request discovery routes."""

from fastapi import APIRouter, Depends, Query

from ridedispatch.api.auth import verify_api_key
from ridedispatch.api.dependencies import CoordinatorDep, DriverIndexDep, LifecycleDep
from ridedispatch.api.models.drivers import (
    NearbyRequestResponse,
    PresenceResponse,
    PresenceUpdateBody,
)
from ridedispatch.core.exceptions import NotFoundError
from ridedispatch.rides.ride import Ride

router = APIRouter(prefix="/drivers", dependencies=[Depends(verify_api_key)])


@router.put("/{driver_id}/presence", response_model=PresenceResponse)
def report_presence(
    driver_id: str, body: PresenceUpdateBody, driver_index: DriverIndexDep
) -> PresenceResponse:
    """Record a driver's location and status.

    Reports older than the one already held are ignored; the response then
    echoes the presence that is kept, with ``applied`` false.
    """
    applied = driver_index.upsert_presence(
        driver_id,
        body.location,
        body.status,
        reported_at=body.reported_at,
        is_online=body.is_online,
    )
    presence = driver_index.get_presence(driver_id)
    if presence is None:
        raise NotFoundError(f"No presence for driver {driver_id}", details={"driver_id": driver_id})
    return PresenceResponse(
        driver_id=driver_id,
        applied=applied,
        location=presence.location,
        status=presence.status,
        is_online=presence.is_online,
        reported_at=presence.reported_at,
    )


@router.delete("/{driver_id}/presence", status_code=204)
def remove_presence(driver_id: str, driver_index: DriverIndexDep) -> None:
    driver_index.remove_driver(driver_id)


@router.get("/{driver_id}/nearby-requests", response_model=list[NearbyRequestResponse])
def list_nearby_requests(
    driver_id: str,
    coordinator: CoordinatorDep,
    radius_km: float | None = Query(None, gt=0, le=50),
    limit: int | None = Query(None, ge=1, le=100),
) -> list[NearbyRequestResponse]:
    nearby = coordinator.nearby_requests_for_driver(driver_id, radius_km, limit)
    return [NearbyRequestResponse(request=n.request, distance_km=n.distance_km) for n in nearby]


@router.get("/{driver_id}/rides", response_model=list[Ride])
def list_driver_rides(driver_id: str, lifecycle: LifecycleDep) -> list[Ride]:
    return lifecycle.list_for_driver(driver_id)
