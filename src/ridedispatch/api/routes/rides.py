"""Ride lifecycle and tracking routes."""

from fastapi import APIRouter, Depends

from ridedispatch.api.auth import verify_api_key
from ridedispatch.api.dependencies import BroadcasterDep, LifecycleDep
from ridedispatch.api.models.rides import (
    CancelRideBody,
    TrackingPointAck,
    TrackingPointBody,
    TransitionBody,
)
from ridedispatch.rides.lifecycle import RideStats
from ridedispatch.rides.ride import Ride
from ridedispatch.tracking.models import TrackingPoint

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.get("/riders/{rider_id}/rides", response_model=list[Ride])
def list_rider_rides(rider_id: str, lifecycle: LifecycleDep) -> list[Ride]:
    return lifecycle.list_for_rider(rider_id)


@router.get("/rides/stats", response_model=RideStats)
def get_ride_stats(lifecycle: LifecycleDep, user_id: str, is_driver: bool = False) -> RideStats:
    """Counts and completed-ride totals for a rider, or a driver with ``is_driver=true``."""
    return lifecycle.stats(user_id, is_driver)


@router.get("/rides/{ride_id}", response_model=Ride)
def get_ride(ride_id: str, lifecycle: LifecycleDep) -> Ride:
    return lifecycle.get(ride_id)


@router.post("/rides/{ride_id}/transition", response_model=Ride)
def transition_ride(ride_id: str, body: TransitionBody, lifecycle: LifecycleDep) -> Ride:
    """Move a ride to its next status. Illegal or concurrent transitions return 409."""
    return lifecycle.transition(ride_id, body.status)


@router.post("/rides/{ride_id}/cancel", response_model=Ride)
def cancel_ride(ride_id: str, body: CancelRideBody, lifecycle: LifecycleDep) -> Ride:
    return lifecycle.cancel(ride_id, body.cancelled_by, body.reason)


@router.post("/rides/{ride_id}/tracking", response_model=TrackingPointAck)
def record_tracking_point(
    ride_id: str, body: TrackingPointBody, broadcaster: BroadcasterDep
) -> TrackingPointAck:
    point = broadcaster.record_point(
        ride_id,
        body.location,
        speed=body.speed_kmh,
        heading=body.heading_deg,
        recorded_at=body.recorded_at,
    )
    if point is None:
        return TrackingPointAck(ride_id=ride_id, recorded=False)
    return TrackingPointAck(ride_id=ride_id, recorded=True, point_id=point.id)


@router.get("/rides/{ride_id}/tracking", response_model=list[TrackingPoint])
def list_tracking_points(ride_id: str, broadcaster: BroadcasterDep) -> list[TrackingPoint]:
    return broadcaster.get_points(ride_id)
