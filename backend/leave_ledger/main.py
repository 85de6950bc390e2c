from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from leave_ledger.api.health import router as health_router
from leave_ledger.api.router import api_router
from leave_ledger.config import get_settings
from leave_ledger.db import dispose_engine, get_engine, get_session_factory, init_models
from leave_ledger.engine import LeaveEngine
from leave_ledger.exceptions import setup_exception_handlers
from leave_ledger.middleware import setup_middleware
from leave_ledger.seed import seed_demo_calendar, seed_demo_directory
from leave_ledger.services.employee import InMemoryEmployeeDirectory
from leave_ledger.services.holiday import InMemoryHolidayCalendar
from leave_ledger.services.notification import LoggingNotificationSink

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager for startup and shutdown."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    logger.info("Starting %s v%s [%s]", settings.app_name, settings.app_version, settings.environment)
    if settings.auto_create_schema:
        await init_models(get_engine())
    yield
    logger.info("Shutting down %s", settings.app_name)
    await dispose_engine()


def build_default_engine() -> LeaveEngine:
    """Engine over the configured database with in-memory collaborators.

    Outside production the directory and calendar hold the demo organisation.
    """
    settings = get_settings()
    directory = InMemoryEmployeeDirectory()
    calendar = InMemoryHolidayCalendar()
    if settings.environment != "production":
        seed_demo_directory(directory)
        seed_demo_calendar(calendar)
    return LeaveEngine(
        get_session_factory(),
        directory,
        calendar,
        LoggingNotificationSink(),
        settings=settings,
    )


def create_app(engine: LeaveEngine | None = None) -> FastAPI:
    """Application factory."""
    settings = get_settings()

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )
    application.state.engine = engine or build_default_engine()

    setup_middleware(application, settings)
    setup_exception_handlers(application)

    application.include_router(health_router)
    application.include_router(api_router)

    return application


app = create_app()
