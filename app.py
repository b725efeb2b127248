"""
app.py — FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the repository and reservation workflow, registers the router,
and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from reservation_engine.controllers.reservation_controller import router as reservation_router
from reservation_engine.repository.data_repository import DataRepository
from reservation_engine.services.reservation_service import ReservationWorkflowService
from reservation_engine.utils.config import Settings, get_settings
from reservation_engine.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Services are injected via app.state so controllers resolve them per request.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)
    reservation_service = ReservationWorkflowService(
        repository=repository,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(reservation_router)

    app.state.repository = repository
    app.state.reservation_service = reservation_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before the demo inventory and charge catalog are seeded.
    """
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo rooms and charge catalog (skipped if Rooms not empty)")
        repository.seed_demo_data()

    logger.info("Startup complete | database=%s", repository.database_path)


# Module-level app object for uvicorn
app = create_app()
