"""Ride request routes: create, cancel, re-price, dispatch and the accept race."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from ridedispatch.api.auth import verify_api_key
from ridedispatch.api.dependencies import CoordinatorDep, RequestManagerDep
from ridedispatch.api.models.ride_requests import (
    CandidateResponse,
    CreateRideRequestBody,
    CreateRideRequestResponse,
    DeclineResponse,
    DispatchResponse,
    DriverActionBody,
    UpdatePickupBody,
)
from ridedispatch.ride_requests.manager import RideRequestStats
from ridedispatch.ride_requests.models import RideRequest
from ridedispatch.rides.ride import Ride

router = APIRouter(prefix="/ride-requests", dependencies=[Depends(verify_api_key)])


@router.post("", response_model=CreateRideRequestResponse, status_code=201)
async def create_ride_request(
    body: CreateRideRequestBody,
    manager: RequestManagerDep,
    coordinator: CoordinatorDep,
) -> CreateRideRequestResponse:
    """Create a ride request and, unless told otherwise, offer it to nearby drivers.

    A rider may hold only one active request. When no driver is found the
    request stays open and the rider is told on their channel.
    """
    request = await manager.create(
        rider_id=body.rider_id,
        pickup=body.pickup,
        destination=body.destination,
        ride_class=body.ride_class,
        max_wait_seconds=body.max_wait_seconds,
        ttl_seconds=body.ttl_seconds,
    )
    offered: list[str] = []
    if body.dispatch:
        candidates = await coordinator.dispatch(request)
        offered = [c.driver_id for c in candidates]
    return CreateRideRequestResponse(request=request, drivers_offered=offered)


@router.get("/stats", response_model=RideRequestStats)
def get_ride_request_stats(
    manager: RequestManagerDep,
    rider_id: str | None = Query(None),
) -> RideRequestStats:
    return manager.stats(rider_id)


@router.get("/matching-stats")
def get_matching_stats(coordinator: CoordinatorDep) -> dict[str, Any]:
    return coordinator.get_matching_stats()


@router.get("/riders/{rider_id}/active", response_model=RideRequest | None)
def get_active_request_for_rider(rider_id: str, manager: RequestManagerDep) -> RideRequest | None:
    return manager.get_active_for_rider(rider_id)


@router.get("/{request_id}", response_model=RideRequest)
def get_ride_request(request_id: str, manager: RequestManagerDep) -> RideRequest:
    return manager.get(request_id)


@router.post("/{request_id}/cancel", response_model=RideRequest)
async def cancel_ride_request(request_id: str, coordinator: CoordinatorDep) -> RideRequest:
    return await coordinator.cancel_request(request_id)


@router.patch("/{request_id}/pickup", response_model=RideRequest)
async def update_pickup(
    request_id: str, body: UpdatePickupBody, manager: RequestManagerDep
) -> RideRequest:
    return await manager.update_pickup(request_id, body.pickup)


@router.post("/{request_id}/dispatch", response_model=DispatchResponse)
async def dispatch_ride_request(request_id: str, coordinator: CoordinatorDep) -> DispatchResponse:
    candidates = await coordinator.dispatch(request_id)
    return DispatchResponse(
        request_id=request_id,
        candidates=[
            CandidateResponse(driver_id=c.driver_id, location=c.location, distance_km=c.distance_km)
            for c in candidates
        ],
    )


@router.post("/{request_id}/accept", response_model=Ride)
def accept_ride_request(
    request_id: str, body: DriverActionBody, coordinator: CoordinatorDep
) -> Ride:
    """Claim the request for a driver. Exactly one concurrent caller wins; the rest get 409."""
    return coordinator.accept(request_id, body.driver_id)


@router.post("/{request_id}/decline", response_model=DeclineResponse)
def decline_ride_request(
    request_id: str, body: DriverActionBody, coordinator: CoordinatorDep
) -> DeclineResponse:
    coordinator.decline(request_id, body.driver_id)
    return DeclineResponse(request_id=request_id, driver_id=body.driver_id)
