import logging
from datetime import UTC, datetime
from typing import Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import text

from leave_ledger.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Liveness plus ledger database reachability."""

    status: Literal["ok", "degraded"]
    database: Literal["connected", "unreachable"]
    version: str
    environment: str
    checked_at: datetime


async def _ping_ledger_database(request: Request) -> bool:
    engine = request.app.state.engine
    try:
        async with engine.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: ledger database unreachable")
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Report whether the API is up and the ledger database answers."""
    settings = get_settings()
    connected = await _ping_ledger_database(request)
    return HealthResponse(
        status="ok" if connected else "degraded",
        database="connected" if connected else "unreachable",
        version=settings.app_version,
        environment=settings.environment,
        checked_at=datetime.now(UTC),
    )
