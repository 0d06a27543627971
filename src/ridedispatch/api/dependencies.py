"""FastAPI dependency injection providers."""

from typing import Annotated

from fastapi import Depends, Request

from ridedispatch.matching.driver_geospatial_index import DriverGeospatialIndex
from ridedispatch.matching.matching_coordinator import MatchingCoordinator
from ridedispatch.pricing.fare import FareEstimator
from ridedispatch.pricing.surge_zones import SurgeZoneIndex
from ridedispatch.ride_requests.manager import RideRequestManager
from ridedispatch.rides.lifecycle import RideLifecycle
from ridedispatch.service import DispatchService
from ridedispatch.tracking.broadcaster import TrackingBroadcaster


def get_service(request: Request) -> DispatchService:
    """Retrieve the wired DispatchService from app state."""
    return request.app.state.service


def get_coordinator(request: Request) -> MatchingCoordinator:
    return get_service(request).coordinator


def get_request_manager(request: Request) -> RideRequestManager:
    return get_service(request).requests


def get_driver_index(request: Request) -> DriverGeospatialIndex:
    return get_service(request).driver_index


def get_lifecycle(request: Request) -> RideLifecycle:
    return get_service(request).lifecycle


def get_broadcaster(request: Request) -> TrackingBroadcaster:
    return get_service(request).broadcaster


def get_surge_index(request: Request) -> SurgeZoneIndex:
    return get_service(request).surge_index


def get_estimator(request: Request) -> FareEstimator:
    return get_service(request).estimator


CoordinatorDep = Annotated[MatchingCoordinator, Depends(get_coordinator)]
RequestManagerDep = Annotated[RideRequestManager, Depends(get_request_manager)]
DriverIndexDep = Annotated[DriverGeospatialIndex, Depends(get_driver_index)]
LifecycleDep = Annotated[RideLifecycle, Depends(get_lifecycle)]
BroadcasterDep = Annotated[TrackingBroadcaster, Depends(get_broadcaster)]
SurgeIndexDep = Annotated[SurgeZoneIndex, Depends(get_surge_index)]
EstimatorDep = Annotated[FareEstimator, Depends(get_estimator)]
