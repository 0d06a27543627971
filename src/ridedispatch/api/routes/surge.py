"""Surge zone administration and lookup routes."""

from fastapi import APIRouter, Depends, HTTPException, Query

from ridedispatch.api.auth import verify_api_key
from ridedispatch.api.dependencies import SurgeIndexDep
from ridedispatch.api.models.surge import (
    CreateSurgeZoneBody,
    MultiplierResponse,
    UpdateSurgeZoneBody,
)
from ridedispatch.geo.distance import validate_coordinate
from ridedispatch.pricing.models import SurgeZone

router = APIRouter(prefix="/surge", dependencies=[Depends(verify_api_key)])


@router.get("/zones", response_model=list[SurgeZone])
def list_zones(surge_index: SurgeIndexDep) -> list[SurgeZone]:
    return surge_index.list_zones()


@router.get("/zones/active", response_model=list[SurgeZone])
def list_active_zones(
    surge_index: SurgeIndexDep,
    min_lat: float | None = Query(None, ge=-90, le=90),
    min_lon: float | None = Query(None, ge=-180, le=180),
    max_lat: float | None = Query(None, ge=-90, le=90),
    max_lon: float | None = Query(None, ge=-180, le=180),
) -> list[SurgeZone]:
    """Zones in effect now, optionally limited to those touching a bounding box."""
    if min_lat is not None and min_lon is not None and max_lat is not None and max_lon is not None:
        return surge_index.zones_in_bounds(min_lat, min_lon, max_lat, max_lon)
    return surge_index.active_zones()


@router.get("/multiplier", response_model=MultiplierResponse)
def get_multiplier(
    surge_index: SurgeIndexDep,
    lat: float = Query(...),
    lon: float = Query(...),
) -> MultiplierResponse:
    point = validate_coordinate((lat, lon))
    return MultiplierResponse(
        location=point,
        multiplier=surge_index.effective_multiplier(point),
        zones=surge_index.matching_zones(point),
    )


def to_zone(body: CreateSurgeZoneBody) -> SurgeZone:
    try:
        return SurgeZone.model_validate(body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.post("/zones", response_model=SurgeZone, status_code=201)
def create_zone(body: CreateSurgeZoneBody, surge_index: SurgeIndexDep) -> SurgeZone:
    return surge_index.add_zone(to_zone(body))


@router.post("/zones/bulk", response_model=list[SurgeZone], status_code=201)
def create_zones(
    bodies: list[CreateSurgeZoneBody], surge_index: SurgeIndexDep
) -> list[SurgeZone]:
    """Create several zones; an invalid or conflicting entry rejects the whole batch."""
    return surge_index.add_zones([to_zone(body) for body in bodies])


@router.get("/zones/{zone_id}", response_model=SurgeZone)
def get_zone(zone_id: str, surge_index: SurgeIndexDep) -> SurgeZone:
    return surge_index.get_zone(zone_id)


@router.patch("/zones/{zone_id}", response_model=SurgeZone)
def update_zone(
    zone_id: str, body: UpdateSurgeZoneBody, surge_index: SurgeIndexDep
) -> SurgeZone:
    return surge_index.update_zone(zone_id, **body.model_dump(exclude_unset=True))


@router.post("/zones/{zone_id}/activate", response_model=SurgeZone)
def activate_zone(zone_id: str, surge_index: SurgeIndexDep) -> SurgeZone:
    return surge_index.activate(zone_id)


@router.post("/zones/{zone_id}/deactivate", response_model=SurgeZone)
def deactivate_zone(zone_id: str, surge_index: SurgeIndexDep) -> SurgeZone:
    return surge_index.deactivate(zone_id)


@router.delete("/zones/{zone_id}", status_code=204)
def delete_zone(zone_id: str, surge_index: SurgeIndexDep) -> None:
    surge_index.remove_zone(zone_id)
