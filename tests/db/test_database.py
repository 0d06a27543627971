from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ridedispatch.db.database import SCHEMA_VERSION, init_database
from ridedispatch.db.repositories import RideRepository, RideRequestRepository
from ridedispatch.db.schema import RideRequest as RideRequestRow
from ridedispatch.db.schema import ServiceMetadata
from ridedispatch.db.transaction import transaction
from ridedispatch.db.utils import format_location, parse_location
from ridedispatch.ride_requests.models import RequestStatus, RideRequest
from ridedispatch.rides.ride import Ride, RideStatus

NOW = datetime(2030, 1, 1, 8, 0, 0)


def make_request(request_id: str, rider_id: str = "rider-1", expires_in: int = 300) -> RideRequest:
    return RideRequest(
        id=request_id,
        rider_id=rider_id,
        pickup=(-23.55, -46.63),
        destination=(-23.58, -46.65),
        max_wait_seconds=expires_in,
        ttl_seconds=900,
        created_at=NOW,
        expires_at=NOW + timedelta(seconds=expires_in),
    )


def make_ride(ride_id: str, request_id: str, driver_id: str, status: RideStatus) -> Ride:
    return Ride(
        id=ride_id,
        request_id=request_id,
        rider_id="rider-1",
        driver_id=driver_id,
        pickup=(-23.55, -46.63),
        destination=(-23.58, -46.65),
        status=status,
        requested_at=NOW,
    )


@pytest.mark.unit
class TestInitDatabase:
    def test_creates_parent_directory_and_schema_version(self, tmp_path):
        session_factory = init_database(f"sqlite:///{tmp_path}/nested/dir/dispatch.db")

        assert (tmp_path / "nested" / "dir" / "dispatch.db").exists()
        with session_factory() as session:
            assert session.get(ServiceMetadata, "schema_version").value == SCHEMA_VERSION

    def test_reinitializing_keeps_single_version_row(self, db_path):
        init_database(f"sqlite:///{db_path}")
        session_factory = init_database(f"sqlite:///{db_path}")
        with session_factory() as session:
            rows = session.execute(select(ServiceMetadata)).scalars().all()
        assert len(rows) == 1


@pytest.mark.unit
class TestLocationColumns:
    def test_round_trip(self):
        assert parse_location(format_location((-23.5505, -46.6333))) == (-23.5505, -46.6333)


@pytest.mark.unit
class TestTransaction:
    def test_commits_on_success(self, session_factory):
        with session_factory() as session, transaction(session):
            RideRequestRepository(session).add(make_request("req-1"))

        with session_factory() as session:
            assert RideRequestRepository(session).get("req-1") is not None

    def test_rolls_back_on_error(self, session_factory):
        with pytest.raises(RuntimeError):
            with session_factory() as session, transaction(session):
                RideRequestRepository(session).add(make_request("req-1"))
                raise RuntimeError("boom")

        with session_factory() as session:
            assert RideRequestRepository(session).get("req-1") is None


@pytest.mark.unit
class TestUniquenessIndexes:
    def test_one_active_request_per_rider(self, session_factory):
        with session_factory() as session, transaction(session):
            RideRequestRepository(session).add(make_request("req-1"))

        with pytest.raises(IntegrityError):
            with session_factory() as session, transaction(session):
                RideRequestRepository(session).add(make_request("req-2"))

    def test_inactive_requests_do_not_count(self, session_factory):
        with session_factory() as session, transaction(session):
            repo = RideRequestRepository(session)
            repo.add(make_request("req-1"))
            assert repo.cancel("req-1", NOW)
            repo.add(make_request("req-2"))

        with session_factory() as session:
            rows = session.execute(select(RideRequestRow)).scalars().all()
        assert len(rows) == 2

    def test_one_active_ride_per_driver(self, session_factory):
        with session_factory() as session, transaction(session):
            RideRepository(session).create(make_ride("ride-1", "req-1", "d1", RideStatus.ACCEPTED))

        with pytest.raises(IntegrityError):
            with session_factory() as session, transaction(session):
                RideRepository(session).create(
                    make_ride("ride-2", "req-2", "d1", RideStatus.ACCEPTED)
                )

    def test_finished_rides_do_not_block_driver(self, session_factory):
        with session_factory() as session, transaction(session):
            repo = RideRepository(session)
            repo.create(make_ride("ride-1", "req-1", "d1", RideStatus.COMPLETED))
            repo.create(make_ride("ride-2", "req-2", "d1", RideStatus.ACCEPTED))

        with session_factory() as session:
            assert len(RideRepository(session).list_by_driver("d1")) == 2


@pytest.mark.unit
class TestRideRequestRepository:
    def test_claim_is_compare_and_swap(self, session_factory):
        with session_factory() as session, transaction(session):
            RideRequestRepository(session).add(make_request("req-1"))

        with session_factory() as session, transaction(session):
            repo = RideRequestRepository(session)
            assert repo.claim("req-1", "d1", NOW) is True
            assert repo.claim("req-1", "d2", NOW) is False

        with session_factory() as session:
            request = RideRequestRepository(session).get("req-1")
        assert request.status == RequestStatus.CLAIMED
        assert request.claimed_by == "d1"
        assert request.is_active is False

    def test_claim_fails_once_lapsed(self, session_factory):
        with session_factory() as session, transaction(session):
            RideRequestRepository(session).add(make_request("req-1", expires_in=60))

        with session_factory() as session, transaction(session):
            lapsed_at = NOW + timedelta(seconds=60)
            assert not RideRequestRepository(session).claim("req-1", "d1", lapsed_at)

    def test_retire_lapsed_returns_ids(self, session_factory):
        with session_factory() as session, transaction(session):
            repo = RideRequestRepository(session)
            repo.add(make_request("req-1", rider_id="r1", expires_in=60))
            repo.add(make_request("req-2", rider_id="r2", expires_in=600))

        with session_factory() as session, transaction(session):
            retired = RideRequestRepository(session).retire_lapsed(NOW + timedelta(seconds=120))

        assert retired == ["req-1"]
        with session_factory() as session:
            repo = RideRequestRepository(session)
            assert repo.get("req-1").status == RequestStatus.EXPIRED
            assert repo.get("req-2").status == RequestStatus.OPEN

    def test_update_status_requires_expected_status(self, session_factory):
        ride = make_ride("ride-1", "req-1", "d1", RideStatus.ACCEPTED)
        with session_factory() as session, transaction(session):
            RideRepository(session).create(ride)

        ride.transition_to(RideStatus.DRIVER_ARRIVING, NOW)
        with session_factory() as session, transaction(session):
            repo = RideRepository(session)
            assert repo.update_status(ride, RideStatus.IN_PROGRESS) is False
            assert repo.update_status(ride, RideStatus.ACCEPTED) is True

        with session_factory() as session:
            stored = RideRepository(session).get("ride-1")
        assert stored.status == RideStatus.DRIVER_ARRIVING
        assert stored.driver_arriving_at == NOW
