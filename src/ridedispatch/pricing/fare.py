"""Fare estimation from route distance, duration and surge."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from ridedispatch.core.exceptions import DispatchError, RoutingUnavailableError
from ridedispatch.core.retry import RetryConfig, with_retry
from ridedispatch.db.utils import utc_now
from ridedispatch.geo.routing import RoutingProvider
from ridedispatch.settings import FareSettings

from .models import FareEstimate, RideClass
from .surge_zones import SurgeZoneIndex

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def round_money(value: Decimal | float) -> float:
    """Round to cents, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class FareRates:
    flat_base: Decimal
    per_km: Decimal
    per_minute: Decimal

    @classmethod
    def of(cls, flat_base: float, per_km: float, per_minute: float) -> "FareRates":
        return cls(Decimal(str(flat_base)), Decimal(str(per_km)), Decimal(str(per_minute)))


def rates_from_settings(settings: FareSettings) -> dict[RideClass, FareRates]:
    return {
        RideClass.ECONOMY: FareRates.of(
            settings.economy_base, settings.economy_per_km, settings.economy_per_minute
        ),
        RideClass.PREMIUM: FareRates.of(
            settings.premium_base, settings.premium_per_km, settings.premium_per_minute
        ),
        RideClass.POOL: FareRates.of(
            settings.pool_base, settings.pool_per_km, settings.pool_per_minute
        ),
        RideClass.LUXURY: FareRates.of(
            settings.luxury_base, settings.luxury_per_km, settings.luxury_per_minute
        ),
        RideClass.SUV: FareRates.of(
            settings.suv_base, settings.suv_per_km, settings.suv_per_minute
        ),
    }


class FareEstimator:
    """Prices a trip: one routing call, the class rate table and the pickup surge."""

    def __init__(
        self,
        routing: RoutingProvider,
        surge_index: SurgeZoneIndex,
        rates: dict[RideClass, FareRates] | None = None,
        retry_config: RetryConfig | None = None,
        timeout_seconds: float = 15.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.routing = routing
        self.surge_index = surge_index
        self.rates = rates or rates_from_settings(FareSettings())
        self.retry_config = retry_config or RetryConfig()
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    def rates_for(self, ride_class: RideClass) -> FareRates:
        return self.rates.get(ride_class) or self.rates[RideClass.ECONOMY]

    def calculate(
        self,
        distance_km: float,
        duration_min: float,
        ride_class: RideClass,
        surge_multiplier: float = 1.0,
    ) -> FareEstimate:
        rates = self.rates_for(ride_class)
        base = (
            rates.flat_base
            + Decimal(str(distance_km)) * rates.per_km
            + Decimal(str(duration_min)) * rates.per_minute
        )
        total = base * Decimal(str(surge_multiplier))
        return FareEstimate(
            distance_km=round(distance_km, 3),
            duration_min=round(duration_min, 2),
            base_fare=round_money(base),
            surge_multiplier=surge_multiplier,
            total_fare=round_money(total),
        )

    async def estimate(
        self,
        pickup: tuple[float, float],
        destination: tuple[float, float],
        ride_class: RideClass | str,
        at: datetime | None = None,
    ) -> FareEstimate:
        """Estimate the fare for a trip.

        Raises:
            RoutingUnavailableError: the route could not be obtained in time,
                the provider kept failing, or no route exists.
        """
        ride_class = RideClass.parse(ride_class)
        try:
            route = await asyncio.wait_for(
                with_retry(
                    lambda: self.routing.get_route(pickup, destination),
                    config=self.retry_config,
                    operation_name="route lookup",
                ),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as e:
            raise RoutingUnavailableError(
                "Fare estimate unavailable: routing timed out",
                details={"timeout_seconds": self.timeout_seconds},
            ) from e
        except (DispatchError, ValueError, KeyError) as e:
            raise RoutingUnavailableError(
                f"Fare estimate unavailable: {e}",
                details={"pickup": pickup, "destination": destination},
            ) from e

        multiplier = self.surge_index.effective_multiplier(pickup, at or self._clock())
        return self.calculate(route.distance_km, route.duration_minutes, ride_class, multiplier)
