"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from odin.controllers.admin_controller import router as admin_router
from odin.controllers.points_controller import router as points_router
from odin.controllers.reservation_controller import router as reservation_router
from odin.domain.constraints import validate_schedule_hours
from odin.repository.data_repository import DataRepository
from odin.services.auth_service import AuthService
from odin.services.member_service import MemberService
from odin.services.period_service import PeriodService
from odin.services.points_service import PointsService
from odin.services.reservation_service import ReservationService
from odin.services.template_import_service import TemplateImportService
from odin.utils.config import Settings, get_settings
from odin.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    validate_schedule_hours(settings.schedule_day_start_hour, settings.schedule_day_end_hour)

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services ---
    member_service = MemberService(repository=repository, settings=settings)
    period_service = PeriodService(repository=repository, settings=settings)
    reservation_service = ReservationService(
        repository=repository,
        member_service=member_service,
        settings=settings,
    )
    points_service = PointsService(
        repository=repository,
        member_service=member_service,
        settings=settings,
    )
    template_import_service = TemplateImportService(points_service=points_service)
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
    app.include_router(admin_router)
    app.include_router(reservation_router)
    app.include_router(points_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.repository = repository
    app.state.member_service = member_service
    app.state.period_service = period_service
    app.state.reservation_service = reservation_service
    app.state.points_service = points_service
    app.state.template_import_service = template_import_service
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before seeding; the seed is skipped when rooms already exist.
    """
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo rooms, items and scoring rules")
        repository.seed_demo_data()

    if not settings.director_token:
        logger.warning("ODIN_DIRECTOR_TOKEN is not set; director endpoints are open")

    logger.info("Startup complete; system ready")


# Module-level app object for uvicorn
app = create_app()
