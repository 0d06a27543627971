from fastapi import APIRouter, Depends

from ridedispatch.api.auth import verify_api_key
from ridedispatch.api.dependencies import EstimatorDep
from ridedispatch.api.models.fares import FareEstimateBody
from ridedispatch.geo.distance import validate_coordinate
from ridedispatch.pricing.models import FareEstimate

router = APIRouter(prefix="/fares", dependencies=[Depends(verify_api_key)])


@router.post("/estimate", response_model=FareEstimate)
async def estimate_fare(body: FareEstimateBody, estimator: EstimatorDep) -> FareEstimate:
    """Quote a fare without creating a request. Returns 503 when routing is unavailable."""
    pickup = validate_coordinate(body.pickup, "pickup")
    destination = validate_coordinate(body.destination, "destination")
    return await estimator.estimate(pickup, destination, body.ride_class)
