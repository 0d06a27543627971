import asyncio

import pytest

from ridedispatch.core.exceptions import RoutingUnavailableError
from ridedispatch.core.retry import RetryConfig
from ridedispatch.geo.osrm_client import NoRouteFoundError, OSRMServiceError
from ridedispatch.pricing.fare import FareEstimator, FareRates, round_money
from ridedispatch.pricing.models import RideClass, SurgeZone
from ridedispatch.pricing.surge_zones import SurgeZoneIndex
from tests.fakes import DESTINATION, PICKUP, FakeRouting, square


@pytest.fixture
def zones(clock) -> SurgeZoneIndex:
    return SurgeZoneIndex(clock=clock)


def make_estimator(routing, zones, clock, **kwargs) -> FareEstimator:
    kwargs.setdefault("retry_config", RetryConfig(max_attempts=3, base_delay=0.0))
    return FareEstimator(routing, zones, clock=clock, **kwargs)


@pytest.mark.unit
class TestRounding:
    def test_half_up(self):
        # float round() would give 2.67 here
        assert round_money(2.675) == 2.68
        assert round_money(2.665) == 2.67

    def test_already_rounded(self):
        assert round_money(19.5) == 19.5


@pytest.mark.unit
class TestCalculate:
    def test_economy(self, zones, clock):
        estimator = make_estimator(FakeRouting(), zones, clock)

        fare = estimator.calculate(10.0, 20.0, RideClass.ECONOMY)

        # 2.50 + 10 * 1.20 + 20 * 0.25
        assert fare.base_fare == 19.50
        assert fare.total_fare == 19.50
        assert fare.surge_multiplier == 1.0

    def test_premium(self, zones, clock):
        fare = make_estimator(FakeRouting(), zones, clock).calculate(10.0, 20.0, RideClass.PREMIUM)
        # 3.50 + 10 * 1.80 + 20 * 0.35
        assert fare.total_fare == 28.50

    def test_luxury_and_suv(self, zones, clock):
        estimator = make_estimator(FakeRouting(), zones, clock)
        # 5.00 + 10 * 2.50 + 20 * 0.50
        assert estimator.calculate(10.0, 20.0, RideClass.LUXURY).total_fare == 40.00
        # 4.00 + 10 * 2.00 + 20 * 0.40
        assert estimator.calculate(10.0, 20.0, RideClass.SUV).total_fare == 32.00

    def test_pool_uses_economy_rates(self, zones, clock):
        estimator = make_estimator(FakeRouting(), zones, clock)
        pool = estimator.calculate(7.3, 14.0, RideClass.POOL)
        economy = estimator.calculate(7.3, 14.0, RideClass.ECONOMY)
        assert pool.total_fare == economy.total_fare

    def test_surge_applies_to_total_only(self, zones, clock):
        fare = make_estimator(FakeRouting(), zones, clock).calculate(
            10.0, 20.0, RideClass.ECONOMY, surge_multiplier=1.5
        )
        assert fare.base_fare == 19.50
        assert fare.total_fare == 29.25

    def test_custom_rates(self, zones, clock):
        estimator = make_estimator(
            FakeRouting(), zones, clock, rates={RideClass.ECONOMY: FareRates.of(1.0, 1.0, 0.0)}
        )
        # Classes missing from the table price as economy
        assert estimator.calculate(3.0, 99.0, RideClass.PREMIUM).total_fare == 4.0


@pytest.mark.unit
class TestEstimate:
    async def test_uses_route_and_surge(self, zones, clock):
        zones.add_zone(SurgeZone(name="centro", boundary=square(PICKUP), multiplier=2.0))
        routing = FakeRouting(distance_km=10.0, duration_min=20.0)

        fare = await make_estimator(routing, zones, clock).estimate(PICKUP, DESTINATION, "economy")

        assert routing.calls == 1
        assert fare.distance_km == 10.0
        assert fare.duration_min == 20.0
        assert fare.surge_multiplier == 2.0
        assert fare.total_fare == 39.00

    async def test_surge_follows_zone_deactivation(self, zones, clock):
        zone = zones.add_zone(SurgeZone(name="centro", boundary=square(PICKUP), multiplier=2.0))
        estimator = make_estimator(FakeRouting(), zones, clock)

        surged = await estimator.estimate(PICKUP, DESTINATION, RideClass.ECONOMY)
        zones.deactivate(zone.id)
        normal = await estimator.estimate(PICKUP, DESTINATION, RideClass.ECONOMY)

        assert surged.total_fare == 2 * normal.total_fare
        assert normal.surge_multiplier == 1.0

    async def test_surge_is_taken_at_pickup(self, zones, clock):
        zones.add_zone(SurgeZone(name="dest", boundary=square(DESTINATION), multiplier=3.0))
        fare = await make_estimator(FakeRouting(), zones, clock).estimate(
            PICKUP, DESTINATION, RideClass.ECONOMY
        )
        assert fare.surge_multiplier == 1.0

    async def test_unknown_class_falls_back_to_economy(self, zones, clock):
        estimator = make_estimator(FakeRouting(), zones, clock)
        fare = await estimator.estimate(PICKUP, DESTINATION, "helicopter")
        assert fare.total_fare == 19.50

    async def test_transient_routing_errors_are_retried(self, zones, clock):
        routing = FakeRouting(error=OSRMServiceError("503"))

        with pytest.raises(RoutingUnavailableError):
            await make_estimator(routing, zones, clock).estimate(PICKUP, DESTINATION, "economy")
        assert routing.calls == 3

    async def test_no_route_is_not_retried(self, zones, clock):
        routing = FakeRouting(error=NoRouteFoundError("no route"))

        with pytest.raises(RoutingUnavailableError):
            await make_estimator(routing, zones, clock).estimate(PICKUP, DESTINATION, "economy")
        assert routing.calls == 1

    async def test_timeout_bounds_the_estimate(self, zones, clock):
        class SlowRouting(FakeRouting):
            async def get_route(self, origin, destination):
                await asyncio.sleep(5)
                return await super().get_route(origin, destination)

        estimator = make_estimator(SlowRouting(), zones, clock, timeout_seconds=0.05)

        with pytest.raises(RoutingUnavailableError) as exc_info:
            await estimator.estimate(PICKUP, DESTINATION, "economy")
        assert "timed out" in exc_info.value.message
