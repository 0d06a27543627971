import os

# Credential fields have no defaults (services must fail without secrets).
# Provide test values so Settings() can be constructed in tests.
os.environ.setdefault("REDIS_PASSWORD", "test-password")
os.environ.setdefault("API_KEY", "test-api-key")
# No backoff between routing retries in tests
os.environ.setdefault("OSRM_RETRY_BASE_DELAY", "0")

from pathlib import Path

import pytest

from ridedispatch.db.database import init_database
from ridedispatch.service import DispatchService, build_service
from ridedispatch.settings import Settings
from tests.fakes import FakeClock, FakeRouting, RecordingChannel


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def routing() -> FakeRouting:
    return FakeRouting()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "dispatch.db"


@pytest.fixture
def session_factory(db_path: Path):
    return init_database(f"sqlite:///{db_path}", busy_timeout_seconds=10.0)


@pytest.fixture
def service(session_factory, routing, channel, clock) -> DispatchService:
    svc = build_service(
        Settings(),
        session_factory=session_factory,
        routing=routing,
        channel=channel,
        clock=clock,
    )
    yield svc
    svc.coordinator.shutdown()


@pytest.fixture
def request_manager(service):
    return service.requests


@pytest.fixture
def coordinator(service):
    return service.coordinator


@pytest.fixture
def driver_index(service):
    return service.driver_index


@pytest.fixture
def lifecycle(service):
    return service.lifecycle


@pytest.fixture
def broadcaster(service):
    return service.broadcaster


@pytest.fixture
def surge_index(service):
    return service.surge_index
