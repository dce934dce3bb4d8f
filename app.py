"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the catalog, repository, notification channel and reservation
service, registers routers, and initializes the database on startup.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from reservations.controllers.catalog_controller import router as catalog_router
from reservations.controllers.reservation_controller import router as reservation_router
from reservations.controllers.session_controller import router as session_router
from reservations.domain.catalog import ResourceCatalog
from reservations.repository.data_repository import DataRepository
from reservations.services.auth_service import AuthService
from reservations.services.notification_service import ChangeNotificationChannel
from reservations.services.reservation_service import ReservationService
from reservations.utils.config import Settings, get_settings
from reservations.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every dependency is created here and stored on app.state; controllers
    resolve them through reservations.controllers.dependencies.
    """
    settings = settings or get_settings()

    # --- Repository (SQLite, atomic check-and-insert) ---
    repository = DataRepository(settings)

    # --- Catalog and change feed (in-process, read-only / fan-out) ---
    catalog = ResourceCatalog()
    channel = ChangeNotificationChannel()

    # --- Services ---
    reservation_service = ReservationService(
        repository=repository,
        catalog=catalog,
        channel=channel,
        settings=settings,
    )
    auth_service = AuthService(settings=settings)

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

    # --- Routers ---
    app.include_router(session_router)
    app.include_router(catalog_router)
    app.include_router(reservation_router)

    app.state.settings = settings
    app.state.repository = repository
    app.state.reservation_service = reservation_service
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """Idempotent startup sequence. Safe to re-run on server restarts."""
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_reservations:
        logger.info("Startup: seeding demo reservations (skipped if not empty)")
        repository.seed_demo_reservations_if_empty()

    logger.info("Startup complete, reservation engine ready")


# Module-level app object for uvicorn
app = create_app()
