from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ridedispatch import __version__
from ridedispatch.api.errors import register_exception_handlers
from ridedispatch.api.middleware.request_context import RequestContextMiddleware
from ridedispatch.api.routes import drivers, fares, ride_requests, rides, surge
from ridedispatch.api.websocket import router as websocket_router
from ridedispatch.service import DispatchService


def create_app(service: DispatchService, api_key: str | None = None) -> FastAPI:
    """Create FastAPI application around an already wired DispatchService.

    Args:
        service: component graph built by ``build_service``
        api_key: key clients must send as X-API-Key; defaults to the configured one
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage application startup and shutdown."""
        await service.start()
        yield
        await service.stop()

    app = FastAPI(
        title="Ride Dispatch API",
        version=__version__,
        description="Ride requests, driver matching, ride lifecycle and live tracking",
        lifespan=lifespan,
    )

    # Set dependencies immediately (not in lifespan) so they're available for testing
    app.state.service = service
    app.state.api_key = api_key if api_key is not None else service.settings.api.key

    register_exception_handlers(app)

    origins = service.settings.cors.origins.split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.include_router(ride_requests.router, tags=["ride-requests"])
    app.include_router(drivers.router, tags=["drivers"])
    app.include_router(rides.router, tags=["rides"])
    app.include_router(surge.router, tags=["surge"])
    app.include_router(fares.router, tags=["fares"])
    app.include_router(websocket_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint for monitoring (unauthenticated for infrastructure)."""
        return {"status": "ok", "version": __version__}

    return app
