"""Demo organisation for development, plus a script that exercises the API with it.

The in-memory directory and calendar are seeded from here by the app factory
outside production. Then run the script against a running API:

    python -m leave_ledger.seed
"""

from __future__ import annotations

import asyncio
import sys
import uuid
from datetime import date, timedelta
from typing import TYPE_CHECKING

import httpx

from leave_ledger.models.enums import Country, Gender, MaritalStatus, Role
from leave_ledger.services.employee import EmployeeInfo
from leave_ledger.services.holiday import HolidayInfo

if TYPE_CHECKING:
    from leave_ledger.services.employee import InMemoryEmployeeDirectory
    from leave_ledger.services.holiday import InMemoryHolidayCalendar

BASE_URL = "http://localhost:8000"

# Well-known employee UUIDs
HR_ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
IT_ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
DIRECTOR_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")
PRIYA_ID = uuid.UUID("00000000-0000-0000-0000-000000000004")
ARJUN_ID = uuid.UUID("00000000-0000-0000-0000-000000000005")
JANE_ID = uuid.UUID("00000000-0000-0000-0000-000000000006")
MIKE_ID = uuid.UUID("00000000-0000-0000-0000-000000000007")

DEMO_EMPLOYEES = [
    EmployeeInfo(
        id=HR_ADMIN_ID,
        first_name="Meera",
        last_name="Iyer",
        email="meera.iyer@example.com",
        country=Country.INDIA,
        designation="DIRECTOR",
        joining_date=date(2018, 4, 2),
        gender=Gender.FEMALE,
        marital_status=MaritalStatus.MARRIED,
        role=Role.HR_ADMIN,
        location="Bengaluru",
    ),
    EmployeeInfo(
        id=IT_ADMIN_ID,
        first_name="Tom",
        last_name="Becker",
        email="tom.becker@example.com",
        country=Country.USA,
        designation="AVP",
        joining_date=date(2019, 9, 16),
        gender=Gender.MALE,
        role=Role.IT_ADMIN,
        location="New York",
    ),
    EmployeeInfo(
        id=DIRECTOR_ID,
        first_name="Rahul",
        last_name="Menon",
        email="rahul.menon@example.com",
        country=Country.INDIA,
        designation="VP",
        joining_date=date(2017, 1, 9),
        gender=Gender.MALE,
        marital_status=MaritalStatus.MARRIED,
        role=Role.MANAGER,
        location="Bengaluru",
    ),
    EmployeeInfo(
        id=PRIYA_ID,
        first_name="Priya",
        last_name="Sharma",
        email="priya.sharma@example.com",
        country=Country.INDIA,
        designation="ASSOCIATE",
        joining_date=date(2022, 3, 20),
        gender=Gender.FEMALE,
        marital_status=MaritalStatus.MARRIED,
        manager_id=ARJUN_ID,
        location="Bengaluru",
    ),
    EmployeeInfo(
        id=ARJUN_ID,
        first_name="Arjun",
        last_name="Rao",
        email="arjun.rao@example.com",
        country=Country.INDIA,
        designation="MANAGER",
        joining_date=date(2020, 7, 1),
        gender=Gender.MALE,
        marital_status=MaritalStatus.MARRIED,
        manager_id=DIRECTOR_ID,
        role=Role.MANAGER,
        location="Bengaluru",
    ),
    EmployeeInfo(
        id=JANE_ID,
        first_name="Jane",
        last_name="Miller",
        email="jane.miller@example.com",
        country=Country.USA,
        designation="ASSOCIATE",
        joining_date=date(2023, 5, 8),
        gender=Gender.FEMALE,
        manager_id=MIKE_ID,
        location="New York",
    ),
    EmployeeInfo(
        id=MIKE_ID,
        first_name="Mike",
        last_name="Davis",
        email="mike.davis@example.com",
        country=Country.USA,
        designation="VP",
        joining_date=date(2016, 2, 1),
        gender=Gender.MALE,
        marital_status=MaritalStatus.MARRIED,
        role=Role.MANAGER,
        location="New York",
    ),
]

DEMO_HOLIDAYS = [
    HolidayInfo(holiday_date=date(2025, 1, 1), name="New Year's Day", region="GLOBAL"),
    HolidayInfo(holiday_date=date(2025, 1, 26), name="Republic Day", region="IN", location="Bengaluru"),
    HolidayInfo(holiday_date=date(2025, 8, 15), name="Independence Day", region="IN", location="Bengaluru"),
    HolidayInfo(holiday_date=date(2025, 10, 2), name="Gandhi Jayanti", region="IN", location="Bengaluru"),
    HolidayInfo(holiday_date=date(2025, 7, 4), name="Independence Day", region="US", location="New York"),
    HolidayInfo(holiday_date=date(2025, 11, 27), name="Thanksgiving", region="US", location="New York"),
    HolidayInfo(holiday_date=date(2025, 12, 25), name="Christmas Day", region="GLOBAL"),
]


def seed_demo_directory(directory: InMemoryEmployeeDirectory) -> None:
    for employee in DEMO_EMPLOYEES:
        directory.seed(employee)


def seed_demo_calendar(calendar: InMemoryHolidayCalendar) -> None:
    for holiday in DEMO_HOLIDAYS:
        calendar.seed(holiday)


# ---------------------------------------------------------------------------
# API script
# ---------------------------------------------------------------------------


def _headers(user_id: uuid.UUID, role: Role = Role.EMPLOYEE) -> dict[str, str]:
    return {"Content-Type": "application/json", "X-User-Id": str(user_id), "X-Role": role.value}


async def _safe_post(
    client: httpx.AsyncClient,
    url: str,
    json: dict,
    headers: dict[str, str],
    label: str,
) -> dict | None:
    """POST and report; returns the response body or None on failure."""
    resp = await client.post(f"{BASE_URL}{url}", json=json, headers=headers)
    if resp.status_code in (200, 201):
        print(f"  [OK] {label}")
        return resp.json()
    print(f"  [FAIL] {label}: {resp.status_code} {resp.text}")
    return None


def _next_business_day(start: date, days_ahead: int = 1) -> date:
    day = start + timedelta(days=days_ahead)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


async def seed_accruals(client: httpx.AsyncClient, today: date) -> None:
    print("\nRunning accrual jobs...")
    admin = _headers(HR_ADMIN_ID, Role.HR_ADMIN)
    for month in range(1, today.month + 1):
        await _safe_post(
            client,
            "/jobs/monthly-accrual",
            {"year": today.year, "month": month},
            admin,
            f"India accrual {today.year}-{month:02d}",
        )
    await _safe_post(client, "/jobs/annual-pto", {"year": today.year}, admin, f"USA PTO {today.year}")


async def seed_requests(client: httpx.AsyncClient, today: date) -> None:
    print("\nSubmitting sample requests...")
    start = _next_business_day(today, 14)
    submitted = await _safe_post(
        client,
        "/requests",
        {
            "employee_id": str(PRIYA_ID),
            "leave_type": "CASUAL_LEAVE",
            "start_date": start.isoformat(),
            "end_date": start.isoformat(),
            "reason": "Family function",
        },
        _headers(PRIYA_ID),
        "Priya: 1 day casual leave",
    )
    if submitted is not None:
        await _safe_post(
            client,
            f"/requests/{submitted['request_id']}/decisions",
            {"level": 1, "verdict": "APPROVED", "comments": "Enjoy"},
            _headers(ARJUN_ID, Role.MANAGER),
            "Arjun approves Priya's request",
        )

    pto_start = _next_business_day(today, 21)
    pto_end = _next_business_day(pto_start, 2)
    await _safe_post(
        client,
        "/requests",
        {
            "employee_id": str(JANE_ID),
            "leave_type": "PTO",
            "start_date": pto_start.isoformat(),
            "end_date": pto_end.isoformat(),
            "reason": "Vacation",
        },
        _headers(JANE_ID),
        "Jane: PTO (pending with Mike)",
    )


async def main() -> None:
    print("=" * 60)
    print("  Leave Ledger - Development Seed Script")
    print("=" * 60)

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            resp = await client.get(f"{BASE_URL}/health")
            if resp.status_code != 200:
                print(f"API health check failed: {resp.status_code}")
                sys.exit(1)
            print("\n[OK] API is healthy")
        except httpx.ConnectError:
            print("ERROR: Cannot connect to API at", BASE_URL)
            sys.exit(1)

        today = date.today()
        await seed_accruals(client, today)
        await seed_requests(client, today)

    print("\n" + "=" * 60)
    print("  Seeding complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
