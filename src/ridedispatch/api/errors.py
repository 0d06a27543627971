"""Maps dispatch errors onto HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ridedispatch.core.exceptions import (
    ConflictError,
    DispatchError,
    InvalidStateError,
    NotFoundError,
    ServiceUnavailableError,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# First match wins, so subclasses precede their bases
_STATUS_BY_ERROR: tuple[tuple[type[DispatchError], int], ...] = (
    (NotFoundError, 404),
    (ValidationError, 422),
    (ConflictError, 409),
    (InvalidStateError, 409),
    (ServiceUnavailableError, 503),
    (TransientError, 503),
)


def status_for(exc: DispatchError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {"detail": exc.message, "error": type(exc).__name__, "details": exc.details}
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DispatchError, dispatch_error_handler)
