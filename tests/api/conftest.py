import pytest
from fastapi.testclient import TestClient

from ridedispatch.api.app import create_app
from ridedispatch.db.utils import utc_now
from ridedispatch.service import build_service
from ridedispatch.settings import Settings
from tests.fakes import FakeRouting, RecordingChannel


@pytest.fixture
def api_routing() -> FakeRouting:
    return FakeRouting()


@pytest.fixture
def api_channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def app_service(session_factory, api_routing, api_channel):
    return build_service(
        Settings(),
        session_factory=session_factory,
        routing=api_routing,
        channel=api_channel,
        clock=utc_now,
    )


@pytest.fixture
def test_client(app_service):
    app = create_app(app_service, api_key="test-api-key")
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers():
    """Pre-configured API key headers for authenticated requests."""
    return {"X-API-Key": "test-api-key"}
