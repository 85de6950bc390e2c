from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import SQLModel

from leave_ledger.config import get_settings
from leave_ledger.exceptions import ConcurrentUpdate, Conflict

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the singleton async engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.debug,
            pool_pre_ping=True,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the singleton async session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            expire_on_commit=False,
        )
    return _session_factory


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    import leave_ledger.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose the engine and reset singletons. Call on app shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> T:
    """Run ``operation`` inside one transaction, retrying lost races a bounded number of times.

    The transaction commits when ``operation`` returns and rolls back on any
    exception. Lock timeouts, deadlocks and ``ConcurrentUpdate`` are retried;
    once the budget is spent a ``Conflict`` is raised so the caller can retry
    later. Every other error propagates unchanged.
    """
    settings = get_settings()
    max_attempts = attempts if attempts is not None else settings.conflict_retry_attempts
    backoff = backoff_seconds if backoff_seconds is not None else settings.conflict_retry_backoff_seconds

    for attempt in range(1, max_attempts + 1):
        try:
            async with session_factory() as session, session.begin():
                return await operation(session)
        except (ConcurrentUpdate, OperationalError, StaleDataError) as exc:
            if attempt >= max_attempts:
                logger.warning("Giving up after %d attempts: %s", attempt, exc)
                raise Conflict() from exc
            logger.info("Transaction conflict on attempt %d/%d, retrying: %s", attempt, max_attempts, exc)
            await asyncio.sleep(backoff * attempt)

    raise Conflict()
