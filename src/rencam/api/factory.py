"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response

from rencam.infra.executor import CachedQueryExecutor
from rencam.infra.settings import EngineSettings, load_settings
from rencam.observability.correlation import (
    CORRELATION_ID_HEADER,
    accept_correlation_id,
    correlation_scope,
)
from rencam.observability.logging import configure_logging, get_logger
from rencam.service import BookingService

from .routes import bookings, equipment, health

logger = get_logger(__name__)


def create_app(
    service: BookingService | None = None,
    settings: EngineSettings | None = None,
) -> FastAPI:
    """Create the booking engine API.

    Args:
        service: Pre-built service. When given, the app uses it as-is and
                 leaves its executor's lifecycle to the caller (tests).
        settings: Settings for the executor the app builds itself.
                  Read from the environment at startup if None.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if service is not None:
            app.state.service = service
            yield
            return

        engine_settings = settings or load_settings()
        configure_logging(engine_settings.log_level)
        executor = CachedQueryExecutor.from_settings(engine_settings)
        executor.open()
        app.state.service = BookingService(executor)
        logger.info("booking engine started")
        try:
            yield
        finally:
            executor.close()
            logger.info("booking engine stopped")

    app = FastAPI(
        title="Rencam Booking Engine",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        requested = request.headers.get(CORRELATION_ID_HEADER)
        with correlation_scope(accept_correlation_id(requested)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(health.router)
    app.include_router(bookings.router)
    app.include_router(equipment.router)

    return app
