"""FastAPI application entry point for the livestock escrow pipeline.

Lifecycle:
    1. Startup: Initialize logging and the database (tables in dev/SQLite),
       then start the auto-release scheduler when enabled.
    2. Running: Serve the REST API at /api/v1/* and /health.
    3. Shutdown: Stop the scheduler and dispose of the database engine.

Run with:
    uvicorn livestock_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from livestock_escrow.config import get_settings
from livestock_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info("app.starting", env=settings.app_env, debug=settings.app_debug)

    # 2. Initialize database
    from livestock_escrow.infrastructure.database.engine import (
        close_db,
        get_session_factory,
        init_db,
    )

    await init_db()

    # 3. Start the auto-release scheduler
    from livestock_escrow.services.scheduler import AutoReleaseScheduler

    app.state.scheduler = None
    if settings.auto_release_enabled:
        app.state.scheduler = AutoReleaseScheduler(get_session_factory(), settings)
        app.state.scheduler.start()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    if app.state.scheduler is not None:
        await app.state.scheduler.stop()
    await close_db()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory: creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Livestock Escrow",
        description=(
            "Load offers, trips, escrow payments and disputes for a "
            "livestock hauling marketplace."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from livestock_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from livestock_escrow.api.routes.admin import router as admin_router
    from livestock_escrow.api.routes.disputes import router as disputes_router
    from livestock_escrow.api.routes.health import router as health_router
    from livestock_escrow.api.routes.offers import router as offers_router
    from livestock_escrow.api.routes.payments import router as payments_router
    from livestock_escrow.api.routes.trips import router as trips_router

    app.include_router(health_router)
    app.include_router(offers_router)
    app.include_router(trips_router)
    app.include_router(payments_router)
    app.include_router(disputes_router)
    app.include_router(admin_router)

    return app


# The app instance used by Uvicorn
app = create_app()
