"""
FastAPI application factory for the local gateway.

* Registers routes for orders, history and admin.
* Starts / stops the reconciliation worker via lifespan events.
* Maps sync-layer errors to HTTP status codes.
* Applies rate-limiting middleware.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridesync.api.middleware import limiter
from ridesync.api.routes import admin, history, orders
from ridesync.domain.errors import (
    BackendRejected,
    NetworkFailure,
    OrderNotFound,
    Unauthorized,
)
from ridesync.services.context import SyncContext

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (Unauthorized, 401),
    (OrderNotFound, 404),
    (BackendRejected, 409),
    (NetworkFailure, 503),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the reconciliation worker on startup; stop on shutdown."""
    await app.state.context.start()
    yield
    await app.state.context.stop()


def _error_handler(status_code: int):
    async def handle(request: Request, exc: Exception) -> JSONResponse:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handle


def create_app(context: Optional[SyncContext] = None) -> FastAPI:
    app = FastAPI(
        title="RideSync Driver Gateway",
        description=(
            "Local gateway between the driver app UI and the order "
            "synchronisation layer: order intents, acceptance, history and "
            "background status tracking."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.context = context or SyncContext.build()

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Sync errors
    for exc_type, status_code in _ERROR_STATUS:
        app.add_exception_handler(exc_type, _error_handler(status_code))

    # Routers
    app.include_router(orders.router, prefix="/api/v1")
    app.include_router(history.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
