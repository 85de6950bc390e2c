"""HTTP tests for the request, balance, adjustment and comp-off endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from leave_ledger.models.enums import LeaveType

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from httpx import AsyncClient

    from conftest import Org
    from leave_ledger.services.employee import EmployeeInfo

    Grant = Callable[..., Awaitable[None]]

REQUESTS_URL = "/requests"


def _headers(employee: EmployeeInfo) -> dict[str, str]:
    return {"X-User-Id": str(employee.id), "X-Role": employee.role.value}


def _earned_leave(employee: EmployeeInfo, start: str = "2024-06-10", end: str = "2024-06-11") -> dict[str, str]:
    return {
        "employee_id": str(employee.id),
        "leave_type": "EARNED_LEAVE",
        "start_date": start,
        "end_date": end,
    }


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestRequestEndpoints:
    """Tests for /requests."""

    async def test_submit_and_approve(self, async_client: AsyncClient, org: Org, grant: Grant) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)

        resp = await async_client.post(REQUESTS_URL, json=_earned_leave(org.employee), headers=_headers(org.employee))
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "PENDING"
        assert Decimal(body["total_days"]) == Decimal(2)
        request_id = body["request_id"]

        resp = await async_client.post(
            f"{REQUESTS_URL}/{request_id}/decisions",
            json={"level": 1, "verdict": "APPROVED", "comments": "ok"},
            headers=_headers(org.manager),
        )
        assert resp.status_code == 200
        assert resp.json()["request_status"] == "APPROVED"

        resp = await async_client.get(
            f"/employees/{org.employee.id}/balances/EARNED_LEAVE",
            headers=_headers(org.employee),
        )
        assert resp.status_code == 200
        balance = resp.json()
        assert balance["year"] == 2024
        assert Decimal(balance["available"]) == Decimal(8)
        assert Decimal(balance["used"]) == Decimal(2)

    async def test_validation_errors_are_listed(self, async_client: AsyncClient, org: Org) -> None:
        payload = _earned_leave(org.employee, start="2024-06-08", end="2024-06-09")
        resp = await async_client.post(REQUESTS_URL, json=payload, headers=_headers(org.employee))

        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "ValidationFailed"
        assert body["status_code"] == 422
        assert {issue["code"] for issue in body["errors"]} == {"VALIDATION"}

    async def test_validate_endpoint_writes_nothing(
        self, async_client: AsyncClient, org: Org, grant: Grant
    ) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 1)
        resp = await async_client.post(
            f"{REQUESTS_URL}/validate", json=_earned_leave(org.employee), headers=_headers(org.employee)
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["valid"] is False
        assert body["errors"][0]["code"] == "INSUFFICIENT_BALANCE"

        resp = await async_client.post(
            f"{REQUESTS_URL}/validate",
            json=_earned_leave(org.employee, start="2024-06-10", end="2024-06-10"),
            headers=_headers(org.employee),
        )
        assert resp.json()["valid"] is True

    async def test_cannot_submit_for_someone_else(self, async_client: AsyncClient, org: Org) -> None:
        resp = await async_client.post(REQUESTS_URL, json=_earned_leave(org.employee), headers=_headers(org.colleague))
        assert resp.status_code == 403

    async def test_missing_user_header(self, async_client: AsyncClient, org: Org) -> None:
        resp = await async_client.post(REQUESTS_URL, json=_earned_leave(org.employee))
        assert resp.status_code == 422

    async def test_request_visibility(self, async_client: AsyncClient, org: Org, grant: Grant) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        resp = await async_client.post(REQUESTS_URL, json=_earned_leave(org.employee), headers=_headers(org.employee))
        request_id = resp.json()["request_id"]

        for viewer in (org.employee, org.manager, org.hr_admin):
            resp = await async_client.get(f"{REQUESTS_URL}/{request_id}", headers=_headers(viewer))
            assert resp.status_code == 200
            assert resp.json()["approvals"][0]["approver_id"] == str(org.manager.id)

        resp = await async_client.get(f"{REQUESTS_URL}/{request_id}", headers=_headers(org.colleague))
        assert resp.status_code == 403

    async def test_decision_conflicts_map_to_409(self, async_client: AsyncClient, org: Org, grant: Grant) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        resp = await async_client.post(REQUESTS_URL, json=_earned_leave(org.employee), headers=_headers(org.employee))
        url = f"{REQUESTS_URL}/{resp.json()['request_id']}/decisions"

        await async_client.post(url, json={"level": 1, "verdict": "REJECTED"}, headers=_headers(org.manager))
        resp = await async_client.post(url, json={"level": 1, "verdict": "APPROVED"}, headers=_headers(org.manager))

        assert resp.status_code == 409
        assert resp.json()["error"] == "AlreadyDecided"

    async def test_cancel(self, async_client: AsyncClient, org: Org, grant: Grant) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        resp = await async_client.post(REQUESTS_URL, json=_earned_leave(org.employee), headers=_headers(org.employee))
        request_id = resp.json()["request_id"]
        await async_client.post(
            f"{REQUESTS_URL}/{request_id}/decisions",
            json={"level": 1, "verdict": "APPROVED"},
            headers=_headers(org.manager),
        )

        resp = await async_client.post(f"{REQUESTS_URL}/{request_id}/cancel", headers=_headers(org.employee))

        assert resp.status_code == 200
        assert resp.json()["status"] == "CANCELLED"


# ---------------------------------------------------------------------------
# Balances and adjustments
# ---------------------------------------------------------------------------


class TestBalanceEndpoints:
    """Tests for balances, ledgers and HR adjustments."""

    async def test_hr_adjustment(self, async_client: AsyncClient, org: Org) -> None:
        payload = {
            "employee_id": str(org.employee.id),
            "leave_type": "SICK_LEAVE",
            "year": 2024,
            "amount": "12",
            "reason": "Annual sick leave entitlement",
        }
        resp = await async_client.post("/balances/adjustments", json=payload, headers=_headers(org.hr_admin))
        assert resp.status_code == 201
        entry = resp.json()
        assert entry["entry_type"] == "ADJUSTMENT"
        assert entry["source_type"] == "ADMIN"
        assert Decimal(entry["amount"]) == Decimal(12)

        resp = await async_client.get(
            f"/employees/{org.employee.id}/balances/SICK_LEAVE/ledger",
            params={"year": 2024},
            headers=_headers(org.employee),
        )
        assert resp.status_code == 200
        assert resp.json()["total"] == 1

    async def test_employee_cannot_adjust(self, async_client: AsyncClient, org: Org) -> None:
        payload = {
            "employee_id": str(org.employee.id),
            "leave_type": "SICK_LEAVE",
            "year": 2024,
            "amount": "12",
            "reason": "Trying my luck",
        }
        resp = await async_client.post("/balances/adjustments", json=payload, headers=_headers(org.employee))
        assert resp.status_code == 403

    async def test_negative_adjustment_cannot_overdraw(self, async_client: AsyncClient, org: Org) -> None:
        payload = {
            "employee_id": str(org.employee.id),
            "leave_type": "EARNED_LEAVE",
            "year": 2024,
            "amount": "-1",
            "reason": "Correction",
        }
        resp = await async_client.post("/balances/adjustments", json=payload, headers=_headers(org.hr_admin))
        assert resp.status_code == 409
        assert resp.json()["error"] == "InsufficientBalance"

    async def test_balance_of_another_employee(self, async_client: AsyncClient, org: Org) -> None:
        resp = await async_client.get(
            f"/employees/{org.employee.id}/balances/EARNED_LEAVE",
            headers=_headers(org.colleague),
        )
        assert resp.status_code == 403

    async def test_unknown_balance_reads_as_zero(self, async_client: AsyncClient, org: Org) -> None:
        resp = await async_client.get(
            f"/employees/{org.employee.id}/balances/MARRIAGE_LEAVE",
            params={"year": 2023},
            headers=_headers(org.employee),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert Decimal(body["available"]) == Decimal(0)
        assert body["version"] == 0


# ---------------------------------------------------------------------------
# Comp-off
# ---------------------------------------------------------------------------


class TestCompOffEndpoints:
    """Tests for /comp-off/work-logs."""

    async def test_log_and_verify(self, async_client: AsyncClient, org: Org) -> None:
        payload = {
            "employee_id": str(org.employee.id),
            "work_date": "2024-06-01",
            "hours_worked": "9",
            "work_type": "WEEKEND",
        }
        resp = await async_client.post("/comp-off/work-logs", json=payload, headers=_headers(org.employee))
        assert resp.status_code == 201
        log_id = resp.json()["id"]

        resp = await async_client.post(
            f"/comp-off/work-logs/{log_id}/verify",
            json={"approve": True},
            headers=_headers(org.colleague),
        )
        assert resp.status_code == 403

        resp = await async_client.post(
            f"/comp-off/work-logs/{log_id}/verify",
            json={"approve": True},
            headers=_headers(org.manager),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "VERIFIED"
        assert body["expires_on"] == "2024-09-03"

        resp = await async_client.get(
            f"/employees/{org.employee.id}/balances/COMPENSATORY_OFF",
            headers=_headers(org.employee),
        )
        assert Decimal(resp.json()["available"]) == Decimal(1)
