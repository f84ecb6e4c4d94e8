"""Monthly allocation — schedule guards, crediting, idempotence, isolation."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.allocation import service as allocation_service
from leaveflow.allocation.cron import CronParseError
from leaveflow.allocation.schemas import AllocationRunOut, CronSettingsUpdate
from leaveflow.allocation.service import AllocationService
from leaveflow.common.constants import AdjustmentType, EmployeeStatus
from leaveflow.leave.models import LeaveBalanceAdjustment
from tests.conftest import _seed_balance, _seed_employee

UTC = timezone.utc

# 1 Feb 2026 00:00 in Asia/Kolkata
FEB_SLOT = datetime(2026, 1, 31, 18, 30, tzinfo=UTC)
MAR_SLOT = datetime(2026, 2, 28, 18, 30, tzinfo=UTC)


async def _schedule(
    db: AsyncSession,
    *,
    cron: str = "0 0 1 * *",
    end_date: date = date(2026, 12, 31),
    now: datetime = datetime(2026, 1, 15, tzinfo=UTC),
):
    return await AllocationService.upsert_settings(
        db,
        CronSettingsUpdate(cron_schedule=cron, end_date=end_date),
        now=now,
    )


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class TestSettings:

    async def test_upsert_computes_next_run(self, db: AsyncSession, hr_admin):
        row = await AllocationService.upsert_settings(
            db,
            CronSettingsUpdate(cron_schedule="0 0 1 * *", end_date=date(2026, 12, 31)),
            actor_id=hr_admin.id,
            now=datetime(2026, 1, 15, tzinfo=UTC),
        )
        assert _as_utc(row.next_run_at) == FEB_SLOT
        assert row.updated_by == hr_admin.id
        assert row.is_active is True

    async def test_upsert_replaces_existing_row(self, db: AsyncSession):
        first = await _schedule(db)
        second = await _schedule(db, cron="30 9 15 * *")
        assert first.id == second.id
        assert second.cron_schedule == "30 9 15 * *"
        # 09:30 IST on 15 Jan is still ahead of 00:00 UTC that day
        assert _as_utc(second.next_run_at) == datetime(2026, 1, 15, 4, 0, tzinfo=UTC)

    def test_invalid_cron_rejected_by_schema(self):
        with pytest.raises(ValueError):
            CronSettingsUpdate(cron_schedule="0 0 1 * * *", end_date=date(2026, 12, 31))

    async def test_service_rejects_invalid_cron(self, db: AsyncSession):
        data = CronSettingsUpdate.model_construct(
            cron_schedule="99 0 1 * *", end_date=date(2026, 12, 31), is_active=True,
        )
        with pytest.raises(CronParseError):
            await AllocationService.upsert_settings(db, data)


class TestGuards:

    async def test_no_settings(self, db: AsyncSession, leave_types):
        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 1, tzinfo=UTC),
        )
        assert run.success is False
        assert run.message == "No active cron settings found"
        assert run.results == []

    async def test_end_date_passed(self, db: AsyncSession, leave_types):
        await _schedule(db, end_date=date(2026, 1, 31))
        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 2, tzinfo=UTC),
        )
        assert run.success is False
        assert "end date" in run.message

    async def test_not_due(self, db: AsyncSession, leave_types):
        await _schedule(db)
        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 1, 20, tzinfo=UTC),
        )
        assert run.success is True
        assert run.message.startswith("Next allocation is not due")
        assert run.results == []

    async def test_no_default_bucket(self, db: AsyncSession):
        await _schedule(db)
        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 1, tzinfo=UTC),
        )
        assert run.success is False
        assert "annual leave type" in run.message


class TestCrediting:

    async def test_scheduled_run_credits_rate(
        self, db: AsyncSession, test_employee, leave_types,
    ):
        al = leave_types["AL"]
        bal = await _seed_balance(db, test_employee.id, al.id, allocated=Decimal("3"))
        settings_row = await _schedule(db)

        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 1, tzinfo=UTC),
        )

        assert run.success is True
        assert run.slot == FEB_SLOT
        assert run.allocated_count == 1
        assert run.error_count == 0
        await db.refresh(bal)
        assert bal.allocated_days == Decimal("4.5")
        assert _as_utc(bal.last_allocated_at) == FEB_SLOT

        adjustment = (
            await db.execute(
                select(LeaveBalanceAdjustment).where(
                    LeaveBalanceAdjustment.leave_balance_id == bal.id
                )
            )
        ).scalars().one()
        assert adjustment.adjustment_type == AdjustmentType.add
        assert adjustment.amount == Decimal("1.5")
        assert adjustment.previous_allocated == Decimal("3")
        assert adjustment.new_allocated == Decimal("4.5")
        assert adjustment.adjusted_by is None
        assert "Rate: 1.5" in adjustment.reason

        assert _as_utc(settings_row.last_run_at) == FEB_SLOT
        assert _as_utc(settings_row.next_run_at) == MAR_SLOT

    async def test_same_slot_twice_is_noop(
        self, db: AsyncSession, test_employee, leave_types,
    ):
        al = leave_types["AL"]
        bal = await _seed_balance(db, test_employee.id, al.id, allocated=Decimal("0"))
        settings_row = await _schedule(db)
        await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 1, tzinfo=UTC),
        )

        # Replay the same slot, e.g. a retried timer after a crash.
        settings_row.next_run_at = FEB_SLOT
        await db.flush()
        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 1, 0, 5, tzinfo=UTC),
        )

        assert run.allocated_count == 0
        assert run.skipped_count == 1
        await db.refresh(bal)
        assert bal.allocated_days == Decimal("1.5")

    async def test_next_slot_credits_again(
        self, db: AsyncSession, test_employee, leave_types,
    ):
        al = leave_types["AL"]
        bal = await _seed_balance(db, test_employee.id, al.id, allocated=Decimal("0"))
        await _schedule(db)
        await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 1, tzinfo=UTC),
        )
        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 3, 1, tzinfo=UTC),
        )

        assert run.slot == MAR_SLOT
        assert run.allocated_count == 1
        await db.refresh(bal)
        assert bal.allocated_days == Decimal("3")

    async def test_only_active_employees_with_rate(
        self, db: AsyncSession, test_employee, leave_types,
    ):
        al = leave_types["AL"]
        relieved = await _seed_employee(db, status=EmployeeStatus.relieved)
        intern = await _seed_employee(db)
        await _seed_balance(db, test_employee.id, al.id)
        await _seed_balance(db, relieved.id, al.id)
        await _seed_balance(db, intern.id, al.id, rate=Decimal("0"))
        # Last year's row is never credited.
        await _seed_balance(db, test_employee.id, al.id, year=2025)
        await _schedule(db)

        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 1, tzinfo=UTC),
        )

        assert [r.employee_id for r in run.results] == [test_employee.id]

    async def test_no_eligible_rows(self, db: AsyncSession, leave_types):
        await _schedule(db)
        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 1, tzinfo=UTC),
        )
        assert run.success is True
        assert run.message == "No employees found with rate_of_leave > 0"

    async def test_one_failure_does_not_stop_batch(
        self, db: AsyncSession, test_employee, manager, leave_types, monkeypatch,
    ):
        al = leave_types["AL"]
        good = await _seed_balance(db, manager.id, al.id, allocated=Decimal("0"))
        await _seed_balance(db, test_employee.id, al.id, allocated=Decimal("0"))
        await _schedule(db)

        real_credit = allocation_service._credit_balance

        async def _flaky(db, balance_id, employee_id, rate, slot):
            if employee_id == test_employee.id:
                raise RuntimeError("row is corrupt")
            return await real_credit(db, balance_id, employee_id, rate, slot)

        monkeypatch.setattr(allocation_service, "_credit_balance", _flaky)

        run = await AllocationService.allocate_monthly_leave(
            db, now=datetime(2026, 2, 1, tzinfo=UTC),
        )

        assert run.success is True
        assert run.allocated_count == 1
        assert run.error_count == 1
        failed = next(r for r in run.results if r.status == "error")
        assert failed.employee_id == test_employee.id
        assert "row is corrupt" in failed.message
        await db.refresh(good)
        assert good.allocated_days == Decimal("1.5")


class TestManualRun:

    async def test_manual_run_ignores_guards(
        self, db: AsyncSession, test_employee, leave_types,
    ):
        al = leave_types["AL"]
        bal = await _seed_balance(db, test_employee.id, al.id, allocated=Decimal("0"))
        await _schedule(db, end_date=date(2026, 1, 20))

        run = await AllocationService.allocate_monthly_leave(
            db, manual=True, now=datetime(2026, 3, 5, tzinfo=UTC),
        )

        assert run.manual is True
        assert run.slot == FEB_SLOT
        assert run.allocated_count == 1
        await db.refresh(bal)
        assert bal.allocated_days == Decimal("1.5")

    async def test_manual_run_without_settings_uses_now(
        self, db: AsyncSession, test_employee, leave_types,
    ):
        al = leave_types["AL"]
        await _seed_balance(db, test_employee.id, al.id)

        run = await AllocationService.allocate_monthly_leave(
            db, manual=True, now=datetime(2026, 4, 2, 8, 15, 33, tzinfo=UTC),
        )

        assert run.slot == datetime(2026, 4, 2, 8, 15, tzinfo=UTC)
        assert run.allocated_count == 1

    async def test_run_serialises(self, db: AsyncSession, test_employee, leave_types):
        al = leave_types["AL"]
        await _seed_balance(db, test_employee.id, al.id)
        run = await AllocationService.allocate_monthly_leave(
            db, manual=True, now=datetime(2026, 4, 2, tzinfo=UTC),
        )

        out = AllocationRunOut.model_validate(run)

        assert out.allocated_count == 1
        assert out.results[0].new_allocated == Decimal("11.5")
