import json

import pytest
from starlette.requests import Request

from ridedispatch.api.errors import dispatch_error_handler, status_for
from ridedispatch.core.exceptions import (
    AlreadyMatchedError,
    ConfigurationError,
    NetworkError,
    NotFoundError,
    RoutingUnavailableError,
    StaleDataError,
    ValidationError,
)


def make_request(path: str = "/ride-requests/r1/accept") -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": path,
            "query_string": b"",
            "headers": [],
        }
    )


@pytest.mark.unit
class TestDispatchErrorHandler:
    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (NotFoundError("missing"), 404),
            (ValidationError("bad"), 422),
            (AlreadyMatchedError("ride already taken"), 409),
            (StaleDataError("expired"), 409),
            (RoutingUnavailableError("down"), 503),
            (NetworkError("reset"), 503),
            (ConfigurationError("broken"), 500),
        ],
    )
    def test_status_codes(self, error, status_code):
        assert status_for(error) == status_code

    async def test_body_carries_message_and_details(self):
        error = AlreadyMatchedError("ride already taken", details={"request_id": "r1"})

        response = await dispatch_error_handler(make_request(), error)

        assert response.status_code == 409
        assert json.loads(response.body) == {
            "detail": "ride already taken",
            "error": "AlreadyMatchedError",
            "details": {"request_id": "r1"},
        }

    async def test_server_errors_are_logged(self, caplog):
        request = make_request("/fares/estimate")

        response = await dispatch_error_handler(request, NetworkError("reset"))

        assert response.status_code == 503
        assert "POST /fares/estimate failed: reset" in caplog.text
