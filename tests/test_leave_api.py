"""HTTP surface — identity header, problem+json errors, leave lifecycle."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.conftest import _seed_balance, identity_headers

PROBLEM_JSON = "application/problem+json"


def _apply_body(leave_type_id, start: date, end: date | None = None, **extra) -> dict:
    return {
        "leave_type_id": str(leave_type_id),
        "start_date": start.isoformat(),
        "end_date": (end or start).isoformat(),
        **extra,
    }


class TestSystem:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_identity_is_problem_json(self, client: AsyncClient):
        resp = await client.get("/api/v1/employees/me")
        assert resp.status_code == 401
        assert resp.headers["content-type"].startswith(PROBLEM_JSON)
        body = resp.json()
        assert body["type"].endswith("/unauthorized")
        assert body["instance"] == "/api/v1/employees/me"

    async def test_unknown_identity(self, client: AsyncClient):
        resp = await client.get(
            "/api/v1/employees/me", headers=identity_headers(uuid.uuid4()),
        )
        assert resp.status_code == 401

    async def test_me(self, client: AsyncClient, db: AsyncSession, test_employee):
        await db.commit()
        resp = await client.get(
            "/api/v1/employees/me", headers=identity_headers(test_employee.id),
        )
        assert resp.status_code == 200
        assert resp.json()["email"] == "eli.e@acme.io"


class TestLeaveLifecycle:

    async def test_apply_approve_withdraw(
        self, client: AsyncClient, db: AsyncSession, test_employee, manager, leave_types,
    ):
        al = leave_types["AL"]
        await _seed_balance(db, test_employee.id, al.id)
        await db.commit()
        me = identity_headers(test_employee.id)

        resp = await client.post(
            "/api/v1/leave/apply",
            json=_apply_body(al.id, date(2026, 3, 6)),
            headers=me,
        )
        assert resp.status_code == 201
        applied = resp.json()
        assert applied["new_status"] == "pending"
        app_id = applied["application"]["id"]

        resp = await client.post(
            f"/api/v1/leave/applications/{app_id}/approve",
            json={"remarks": "ok"},
            headers=identity_headers(manager.id),
        )
        assert resp.status_code == 200
        approved = resp.json()
        assert approved["previous_status"] == "pending"
        assert Decimal(approved["ledger_delta"]) == Decimal("2")
        assert approved["application"]["is_sandwich_leave"] is True

        resp = await client.get(
            "/api/v1/leave/balances", params={"year": 2026}, headers=me,
        )
        assert resp.status_code == 200
        balance = resp.json()["balances"][0]
        assert Decimal(balance["used_days"]) == Decimal("2")
        assert Decimal(balance["remaining_days"]) == Decimal("8")

        resp = await client.post(
            f"/api/v1/leave/applications/{app_id}/withdraw",
            json={"reason": "plans changed"},
            headers=me,
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["ledger_delta"]) == Decimal("-2")

        resp = await client.get("/api/v1/leave/my-leaves", headers=me)
        assert resp.json()["meta"]["total"] == 1
        assert resp.json()["data"][0]["status"] == "withdrawn"

    async def test_application_history(
        self, client: AsyncClient, db: AsyncSession, test_employee, manager, leave_types,
    ):
        await _seed_balance(db, test_employee.id, leave_types["AL"].id)
        await db.commit()
        me = identity_headers(test_employee.id)
        resp = await client.post(
            "/api/v1/leave/apply",
            json=_apply_body(leave_types["AL"].id, date(2026, 3, 4)),
            headers=me,
        )
        app_id = resp.json()["application"]["id"]
        await client.post(
            f"/api/v1/leave/applications/{app_id}/approve",
            json={},
            headers=identity_headers(manager.id),
        )

        resp = await client.get(
            f"/api/v1/leave/applications/{app_id}/history", headers=me,
        )

        assert resp.status_code == 200
        entries = resp.json()
        assert [e["action"] for e in entries] == ["apply", "approved"]
        assert entries[1]["actor_id"] == str(manager.id)

    async def test_self_approval_forbidden(
        self, client: AsyncClient, db: AsyncSession, hr_admin, leave_types,
    ):
        await db.commit()
        hr = identity_headers(hr_admin.id)
        resp = await client.post(
            "/api/v1/leave/apply",
            json=_apply_body(leave_types["AL"].id, date(2026, 3, 4)),
            headers=hr,
        )
        app_id = resp.json()["application"]["id"]

        resp = await client.post(
            f"/api/v1/leave/applications/{app_id}/approve", json={}, headers=hr,
        )
        assert resp.status_code == 403
        assert resp.json()["type"].endswith("/forbidden")

    async def test_terminal_status_is_409(
        self, client: AsyncClient, db: AsyncSession, test_employee, manager, leave_types,
    ):
        await db.commit()
        me = identity_headers(test_employee.id)
        resp = await client.post(
            "/api/v1/leave/apply",
            json=_apply_body(leave_types["AL"].id, date(2026, 3, 4)),
            headers=me,
        )
        app_id = resp.json()["application"]["id"]
        await client.post(
            f"/api/v1/leave/applications/{app_id}/withdraw", json={}, headers=me,
        )

        resp = await client.post(
            f"/api/v1/leave/applications/{app_id}/approve",
            json={},
            headers=identity_headers(manager.id),
        )
        assert resp.status_code == 409
        assert resp.headers["content-type"].startswith(PROBLEM_JSON)
        assert resp.json()["type"].endswith("/invalid-transition")
        assert resp.json()["from_status"] == "withdrawn"

    async def test_end_before_start_is_422(
        self, client: AsyncClient, db: AsyncSession, test_employee, leave_types,
    ):
        await db.commit()
        resp = await client.post(
            "/api/v1/leave/apply",
            json=_apply_body(leave_types["AL"].id, date(2026, 3, 5), date(2026, 3, 4)),
            headers=identity_headers(test_employee.id),
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/validation-error")

    async def test_overlap_is_422_with_field(
        self, client: AsyncClient, db: AsyncSession, test_employee, leave_types,
    ):
        await db.commit()
        me = identity_headers(test_employee.id)
        body = _apply_body(leave_types["AL"].id, date(2026, 3, 4))
        await client.post("/api/v1/leave/apply", json=body, headers=me)

        resp = await client.post("/api/v1/leave/apply", json=body, headers=me)

        assert resp.status_code == 422
        assert "start_date" in resp.json()["errors"]

    async def test_preview_lone_friday(
        self, client: AsyncClient, db: AsyncSession, test_employee,
    ):
        await db.commit()
        resp = await client.post(
            "/api/v1/leave/preview",
            json={"start_date": "2026-03-06", "end_date": "2026-03-06"},
            headers=identity_headers(test_employee.id),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert Decimal(body["deducted_days"]) == Decimal("2")
        assert body["is_sandwich"] is True

    async def test_other_employees_balances_forbidden(
        self, client: AsyncClient, db: AsyncSession, test_employee, manager,
    ):
        await db.commit()
        resp = await client.get(
            "/api/v1/leave/balances",
            params={"employee_id": str(manager.id)},
            headers=identity_headers(test_employee.id),
        )
        assert resp.status_code == 403

    async def test_lop_requires_hr(
        self, client: AsyncClient, db: AsyncSession, test_employee, manager, leave_types,
    ):
        await db.commit()
        resp = await client.post(
            "/api/v1/leave/apply",
            json=_apply_body(leave_types["AL"].id, date(2026, 3, 4)),
            headers=identity_headers(test_employee.id),
        )
        app_id = resp.json()["application"]["id"]

        resp = await client.put(
            f"/api/v1/leave/applications/{app_id}/lop",
            json={"lop_days": "0.5"},
            headers=identity_headers(manager.id),
        )
        assert resp.status_code == 403


class TestHrEndpoints:

    async def test_allocation_run_is_hr_only(
        self, client: AsyncClient, db: AsyncSession, test_employee,
    ):
        await db.commit()
        resp = await client.post(
            "/api/v1/allocation/run", headers=identity_headers(test_employee.id),
        )
        assert resp.status_code == 403

    async def test_manual_allocation_run(
        self, client: AsyncClient, db: AsyncSession, hr_admin, test_employee, leave_types,
    ):
        await _seed_balance(
            db, test_employee.id, leave_types["AL"].id, year=date.today().year,
        )
        await db.commit()

        resp = await client.post(
            "/api/v1/allocation/run", headers=identity_headers(hr_admin.id),
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["manual"] is True
        assert body["allocated_count"] == 1
        assert Decimal(body["results"][0]["new_allocated"]) == Decimal("11.5")

    async def test_settings_round_trip(
        self, client: AsyncClient, db: AsyncSession, hr_admin,
    ):
        await db.commit()
        hr = identity_headers(hr_admin.id)

        resp = await client.get("/api/v1/allocation/settings", headers=hr)
        assert resp.status_code == 404

        resp = await client.put(
            "/api/v1/allocation/settings",
            json={"cron_schedule": "0  0 1 * *", "end_date": "2099-12-31"},
            headers=hr,
        )
        assert resp.status_code == 200
        assert resp.json()["cron_schedule"] == "0 0 1 * *"
        assert resp.json()["next_run_at"] is not None

    async def test_bad_cron_is_422(self, client: AsyncClient, db: AsyncSession, hr_admin):
        await db.commit()
        resp = await client.put(
            "/api/v1/allocation/settings",
            json={"cron_schedule": "0 0 32 * *", "end_date": "2099-12-31"},
            headers=identity_headers(hr_admin.id),
        )
        assert resp.status_code == 422

    async def test_leave_rate_update(
        self, client: AsyncClient, db: AsyncSession, hr_admin,
    ):
        await db.commit()
        resp = await client.put(
            "/api/v1/employees/leave-rates",
            json={"employment_term": "part_time", "leave_rate": "0.75"},
            headers=identity_headers(hr_admin.id),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["employment_term"] == "part_time"
        assert Decimal(body["leave_rate"]) == Decimal("0.75")
        assert body["balances_updated"] == 0
