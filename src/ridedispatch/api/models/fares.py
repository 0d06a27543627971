"""Request models for fare endpoints."""

from pydantic import BaseModel


class FareEstimateBody(BaseModel):
    pickup: tuple[float, float]
    destination: tuple[float, float]
    ride_class: str = "economy"
