from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from leave_ledger.config import Settings
from leave_ledger.db import init_models, run_in_transaction
from leave_ledger.engine import LeaveEngine
from leave_ledger.main import create_app
from leave_ledger.models.enums import Country, Gender, LeaveType, LedgerEntryType, LedgerSourceType, MaritalStatus, Role
from leave_ledger.services import ledger
from leave_ledger.services.employee import EmployeeInfo, InMemoryEmployeeDirectory
from leave_ledger.services.holiday import InMemoryHolidayCalendar
from leave_ledger.services.notification import InMemoryNotificationSink

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

TODAY = date(2024, 6, 3)  # a Monday


@dataclass
class FixedClock:
    """Clock the tests can move."""

    today: date = TODAY

    def __call__(self) -> date:
        return self.today


@dataclass
class Org:
    """A small organisation: two reporting levels plus HR and IT admins."""

    hr_admin: EmployeeInfo
    it_admin: EmployeeInfo
    director: EmployeeInfo
    manager: EmployeeInfo
    employee: EmployeeInfo
    colleague: EmployeeInfo
    us_employee: EmployeeInfo
    us_vp: EmployeeInfo


def make_employee(**overrides: object) -> EmployeeInfo:
    """Build an active India employee; override any field."""
    fields: dict[str, object] = {
        "id": uuid.uuid4(),
        "first_name": "Test",
        "last_name": "Employee",
        "email": "test@example.com",
        "country": Country.INDIA,
        "designation": "ASSOCIATE",
        "joining_date": date(2020, 1, 6),
        "gender": Gender.FEMALE,
        "marital_status": MaritalStatus.MARRIED,
        "location": "Bengaluru",
    }
    fields.update(overrides)
    return EmployeeInfo(**fields)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """File-backed SQLite database per test so separate sessions really run concurrently."""
    _engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await init_models(_engine)
    yield _engine
    await _engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Plain session for assertions against committed state."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        conflict_retry_attempts=5,
        conflict_retry_backoff_seconds=0.05,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def org() -> Org:
    hr_admin = make_employee(first_name="Hema", role=Role.HR_ADMIN, designation="DIRECTOR")
    it_admin = make_employee(first_name="Ivan", role=Role.IT_ADMIN, gender=Gender.MALE)
    director = make_employee(first_name="Dev", role=Role.MANAGER, designation="VP", gender=Gender.MALE)
    manager = make_employee(first_name="Maya", role=Role.MANAGER, manager_id=director.id)
    employee = make_employee(first_name="Priya", manager_id=manager.id)
    colleague = make_employee(first_name="Arjun", manager_id=manager.id, gender=Gender.MALE)
    us_employee = make_employee(
        first_name="Jane",
        country=Country.USA,
        designation="AVP",
        manager_id=manager.id,
        location="New York",
    )
    us_vp = make_employee(
        first_name="Victor",
        country=Country.USA,
        designation="VP",
        manager_id=director.id,
        gender=Gender.MALE,
        location="New York",
    )
    return Org(
        hr_admin=hr_admin,
        it_admin=it_admin,
        director=director,
        manager=manager,
        employee=employee,
        colleague=colleague,
        us_employee=us_employee,
        us_vp=us_vp,
    )


@pytest.fixture
def directory(org: Org) -> InMemoryEmployeeDirectory:
    _directory = InMemoryEmployeeDirectory()
    for member in vars(org).values():
        _directory.seed(member)
    return _directory


@pytest.fixture
def calendar() -> InMemoryHolidayCalendar:
    return InMemoryHolidayCalendar()


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def leave_engine(
    session_factory: async_sessionmaker[AsyncSession],
    directory: InMemoryEmployeeDirectory,
    calendar: InMemoryHolidayCalendar,
    sink: InMemoryNotificationSink,
    clock: FixedClock,
    settings: Settings,
) -> LeaveEngine:
    return LeaveEngine(session_factory, directory, calendar, sink, clock=clock, settings=settings)


@pytest.fixture
def grant(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[None]]:
    """Credit a balance directly through the ledger."""

    async def _grant(
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        amount: Decimal | int | str,
        year: int = TODAY.year,
    ) -> None:
        await run_in_transaction(
            session_factory,
            lambda session: ledger.credit(
                session,
                employee_id,
                leave_type,
                year,
                Decimal(amount),
                entry_type=LedgerEntryType.ADJUSTMENT,
                source_type=LedgerSourceType.ADMIN,
                source_id=f"test-grant:{uuid.uuid4()}",
            ),
        )

    return _grant


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_client(leave_engine: LeaveEngine) -> AsyncIterator[AsyncClient]:
    """Async HTTP client against an app wired to the test engine."""
    app = create_app(engine=leave_engine)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
