import pytest

from ridedispatch.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ridedispatch.db.repositories import ride_repository
from ridedispatch.rides.ride import RideStatus
from tests.fakes import DESTINATION, PICKUP, matched_ride, offset_km


@pytest.mark.unit
class TestOpenRide:
    async def test_accept_opens_ride_with_estimate(self, service, clock):
        ride = await matched_ride(service)

        assert ride.status == RideStatus.ACCEPTED
        assert ride.driver_id == "driver-1"
        assert ride.accepted_at == clock()
        assert ride.requested_at == clock()
        assert ride.fare_amount == 19.50
        assert ride.distance_km == 10.0
        assert service.lifecycle.get(ride.id) == ride


@pytest.mark.unit
class TestTransition:
    async def test_full_trip(self, service, lifecycle, clock, channel):
        ride = await matched_ride(service)

        clock.advance(60)
        lifecycle.transition(ride.id, RideStatus.DRIVER_ARRIVING)
        clock.advance(120)
        lifecycle.transition(ride.id, "in_progress")
        clock.advance(900)
        done = lifecycle.transition(ride.id, RideStatus.COMPLETED)

        assert done.status == RideStatus.COMPLETED
        assert done.completed_at == clock()
        assert lifecycle.get(ride.id).status == RideStatus.COMPLETED
        statuses = [m["status"] for m in channel.on(f"ride:{ride.id}") if m["type"] == "status"]
        assert statuses == ["accepted", "driver_arriving", "in_progress", "completed"]

    async def test_skipping_a_step_is_rejected(self, service, lifecycle):
        ride = await matched_ride(service)

        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(ride.id, RideStatus.COMPLETED)
        assert lifecycle.get(ride.id).status == RideStatus.ACCEPTED

    async def test_terminal_ride_cannot_move(self, service, lifecycle):
        ride = await matched_ride(service)
        lifecycle.cancel(ride.id, "driver", "flat tire")

        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(ride.id, RideStatus.DRIVER_ARRIVING)

    async def test_unknown_status(self, service, lifecycle):
        ride = await matched_ride(service)
        with pytest.raises(ValidationError):
            lifecycle.transition(ride.id, "teleporting")

    def test_unknown_ride(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.transition("missing", RideStatus.DRIVER_ARRIVING)

    async def test_cancel_records_metadata(self, service, lifecycle):
        ride = await matched_ride(service)

        cancelled = lifecycle.cancel(ride.id, "rider", "found another ride")

        stored = lifecycle.get(ride.id)
        assert cancelled.status == RideStatus.CANCELLED
        assert stored.cancelled_by == "rider"
        assert stored.cancellation_reason == "found another ride"

    async def test_cancel_defaults_to_system(self, service, lifecycle):
        ride = await matched_ride(service)
        assert lifecycle.transition(ride.id, "cancelled").cancelled_by == "system"

    async def test_concurrent_transition_loses(self, service, lifecycle, monkeypatch):
        ride = await matched_ride(service)

        monkeypatch.setattr(
            ride_repository.RideRepository, "update_status", lambda self, ride, expected: False
        )

        with pytest.raises(ConflictError):
            lifecycle.transition(ride.id, RideStatus.DRIVER_ARRIVING)


@pytest.mark.unit
class TestCompletionDistance:
    async def test_distance_recomputed_from_tracking(self, service, lifecycle, broadcaster):
        ride = await matched_ride(service)
        lifecycle.transition(ride.id, RideStatus.DRIVER_ARRIVING)
        lifecycle.transition(ride.id, RideStatus.IN_PROGRESS)
        for km in (0.0, 1.0, 2.5):
            broadcaster.record_point(ride.id, offset_km(PICKUP, km))

        done = lifecycle.transition(ride.id, RideStatus.COMPLETED)

        assert done.distance_km == pytest.approx(2.5, abs=0.01)
        assert lifecycle.get(ride.id).distance_km == done.distance_km

    async def test_estimate_kept_without_enough_points(self, service, lifecycle, broadcaster):
        ride = await matched_ride(service)
        lifecycle.transition(ride.id, RideStatus.DRIVER_ARRIVING)
        lifecycle.transition(ride.id, RideStatus.IN_PROGRESS)
        broadcaster.record_point(ride.id, DESTINATION)

        done = lifecycle.transition(ride.id, RideStatus.COMPLETED)

        assert done.distance_km == 10.0


@pytest.mark.unit
class TestHistory:
    async def test_lists_by_rider_and_driver(self, service, lifecycle):
        first = await matched_ride(service, rider_id="rider-1", driver_id="driver-1")
        lifecycle.transition(first.id, "cancelled")
        second = await matched_ride(service, rider_id="rider-1", driver_id="driver-2")

        assert {r.id for r in lifecycle.list_for_rider("rider-1")} == {first.id, second.id}
        assert [r.id for r in lifecycle.list_for_driver("driver-2")] == [second.id]
        assert lifecycle.get_for_request(second.request_id).id == second.id


@pytest.mark.unit
class TestStats:
    async def test_rider_and_driver_stats(self, service, lifecycle):
        done = await matched_ride(service, rider_id="rider-1", driver_id="driver-1")
        for status in ("driver_arriving", "in_progress", "completed"):
            lifecycle.transition(done.id, status)
        dropped = await matched_ride(service, rider_id="rider-1", driver_id="driver-2")
        lifecycle.cancel(dropped.id, "rider")
        await matched_ride(service, rider_id="rider-1", driver_id="driver-1")

        rider = lifecycle.stats("rider-1")
        driver = lifecycle.stats("driver-1", is_driver=True)

        assert rider.total_rides == 3
        assert rider.completed_rides == 1
        assert rider.cancelled_rides == 1
        assert rider.active_rides == 1
        assert rider.total_fare == 19.50
        assert rider.total_distance_km == 10.0
        assert rider.total_duration_min == 20.0
        assert rider.average_distance_km == 10.0
        assert driver.is_driver is True
        assert driver.total_rides == 2
        assert driver.completed_rides == 1
        assert driver.cancelled_rides == 0

    def test_unknown_user_has_empty_stats(self, lifecycle):
        stats = lifecycle.stats("nobody")

        assert stats.total_rides == 0
        assert stats.total_fare == 0.0
        assert stats.average_distance_km == 0.0
