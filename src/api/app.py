"""
FastAPI application factory.

* Registers routes for rides, bookings and admin.
* Maps engine errors to HTTP status codes.
* Starts / stops the background booking sweeper via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, bookings, rides
from src.config import settings
from src.domain.errors import (
    ConflictError,
    EngineError,
    ForbiddenError,
    InsufficientSeatsError,
    InvalidTransitionError,
    NotBookableError,
    NotFoundError,
    ValidationError,
)
from src.infrastructure.database import dispose_engine
from src.infrastructure.redis_client import close_redis
from src.workers import sweeper as _sweeper

logging.basicConfig(level=settings.log_level.upper())

ERROR_STATUS: dict[type[EngineError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    ForbiddenError: 403,
    ConflictError: 409,
    InsufficientSeatsError: 409,
    NotBookableError: 409,
    InvalidTransitionError: 409,
}


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code, "details": exc.details},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sweep worker on startup; stop on shutdown."""
    await _sweeper.start_sweep_loop()
    yield
    await _sweeper.stop_sweep_loop()
    await close_redis()
    await dispose_engine()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool Ride & Booking API",
        description=(
            "Drivers publish rides with a fixed number of seats; passengers "
            "book them.  Keeps seat counts consistent under concurrent "
            "bookings and applies time-based cancellation, refund and "
            "no-show rules."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(EngineError, engine_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
