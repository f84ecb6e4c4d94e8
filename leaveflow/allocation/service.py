"""Monthly leave allocation.

An external timer calls :meth:`AllocationService.allocate_monthly_leave`
(see ``scripts/run_monthly_allocation.py``). Every active employee whose
default-bucket row for the current year has ``rate_of_leave > 0`` is
credited that rate. Each credit is recorded as a LeaveBalanceAdjustment
keyed by the schedule slot, which makes a repeated run for the same slot a
no-op. One employee's failure is reported in their result and never stops
the batch.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.allocation.cron import CronExpression, CronParseError
from leaveflow.allocation.models import LeaveCronSettings
from leaveflow.allocation.schemas import CronSettingsUpdate
from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import AdjustmentType, EmployeeStatus
from leaveflow.common.timeutils import as_utc, truncate_to_minute, utcnow
from leaveflow.config import settings
from leaveflow.core_hr.models import Employee
from leaveflow.leave.models import LeaveBalance, LeaveBalanceAdjustment
from leaveflow.leave.registry import LeaveTypeRegistry

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    employee_id: uuid.UUID
    employee_code: str
    leave_balance_id: uuid.UUID
    amount: Decimal
    status: str  # allocated | skipped | error
    message: str
    previous_allocated: Decimal = Decimal("0")
    new_allocated: Decimal = Decimal("0")


@dataclass
class AllocationRun:
    success: bool
    manual: bool
    message: str
    slot: Optional[datetime] = None
    results: list[AllocationResult] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def allocated_count(self) -> int:
        return self._count("allocated")

    @property
    def skipped_count(self) -> int:
        return self._count("skipped")

    @property
    def error_count(self) -> int:
        return self._count("error")


def allocation_zone() -> ZoneInfo:
    return ZoneInfo(settings.ALLOCATION_TIMEZONE)


async def _credit_balance(
    db: AsyncSession,
    balance_id: uuid.UUID,
    employee_id: uuid.UUID,
    rate: Decimal,
    slot: datetime,
) -> tuple[Decimal, Decimal]:
    """Credit *rate* to one ledger row for *slot*; returns (previous, new)."""
    result = await db.execute(
        select(LeaveBalance)
        .where(LeaveBalance.id == balance_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    balance = result.scalars().one()
    previous = Decimal(balance.allocated_days)
    new_allocated = previous + rate
    balance.allocated_days = new_allocated
    balance.last_allocated_at = slot
    db.add(
        LeaveBalanceAdjustment(
            employee_id=employee_id,
            leave_balance_id=balance_id,
            adjustment_type=AdjustmentType.add,
            amount=rate,
            reason=f"Monthly leave allocation (Rate: {rate} days/month)",
            previous_allocated=previous,
            new_allocated=new_allocated,
            adjusted_by=None,
            allocation_slot=slot,
        )
    )
    await db.flush()
    return previous, new_allocated


class AllocationService:
    """Schedule settings and the monthly credit run."""

    @staticmethod
    async def get_active_settings(db: AsyncSession) -> Optional[LeaveCronSettings]:
        result = await db.execute(
            select(LeaveCronSettings)
            .where(LeaveCronSettings.is_active.is_(True))
            .order_by(LeaveCronSettings.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def upsert_settings(
        db: AsyncSession,
        data: CronSettingsUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> LeaveCronSettings:
        """Create or replace the global schedule and recompute ``next_run_at``."""
        expression = CronExpression.parse(data.cron_schedule)
        now = as_utc(now) if now is not None else utcnow()

        result = await db.execute(
            select(LeaveCronSettings).order_by(LeaveCronSettings.created_at.desc()).limit(1)
        )
        row = result.scalars().first()
        if row is None:
            row = LeaveCronSettings()
            db.add(row)
        row.cron_schedule = expression.source
        row.end_date = data.end_date
        row.is_active = data.is_active
        row.updated_by = actor_id
        row.next_run_at = expression.next_after(now, allocation_zone())
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_cron_settings",
            entity_id=row.id,
            actor_id=actor_id,
            new_values={
                "cron_schedule": row.cron_schedule,
                "end_date": row.end_date.isoformat(),
                "is_active": row.is_active,
                "next_run_at": row.next_run_at.isoformat(),
            },
        )
        logger.info(
            "Allocation schedule set to '%s' (next run %s)",
            row.cron_schedule, row.next_run_at,
        )
        return row

    @staticmethod
    async def allocate_monthly_leave(
        db: AsyncSession,
        *,
        manual: bool = False,
        now: Optional[datetime] = None,
    ) -> AllocationRun:
        """Credit ``rate_of_leave`` for the current schedule slot.

        Scheduled runs need active settings, an end date not yet passed and a
        due ``next_run_at``; otherwise they return an unsuccessful run without
        touching anything. Manual runs skip those guards.
        """
        now = as_utc(now) if now is not None else utcnow()
        zone = allocation_zone()
        today: date = now.astimezone(zone).date()
        schedule = await AllocationService.get_active_settings(db)

        if not manual:
            if schedule is None:
                logger.warning("Monthly allocation skipped: no active cron settings")
                return AllocationRun(False, manual, "No active cron settings found")
            if today > schedule.end_date:
                msg = (
                    f"Cron job end date ({schedule.end_date}) has passed. "
                    "Please update settings."
                )
                logger.warning("Monthly allocation skipped: %s", msg)
                return AllocationRun(False, manual, msg)
            due = as_utc(schedule.next_run_at)
            if due is not None and due > now:
                return AllocationRun(
                    True, manual, f"Next allocation is not due until {due.isoformat()}",
                )

        bucket = await LeaveTypeRegistry.get_default_bucket(db)
        if bucket is None:
            logger.warning("Monthly allocation skipped: no default leave type")
            return AllocationRun(
                False, manual, "No leave type found. Please create an annual leave type.",
            )

        base = as_utc(schedule.next_run_at) if schedule and schedule.next_run_at else now
        slot = truncate_to_minute(base)
        year = slot.astimezone(zone).year
        run = AllocationRun(True, manual, "", slot=slot)

        rows = (
            await db.execute(
                select(
                    LeaveBalance.id,
                    LeaveBalance.employee_id,
                    LeaveBalance.rate_of_leave,
                    Employee.employee_code,
                )
                .join(Employee, Employee.id == LeaveBalance.employee_id)
                .where(
                    Employee.status == EmployeeStatus.active,
                    LeaveBalance.leave_type_id == bucket.id,
                    LeaveBalance.year == year,
                    LeaveBalance.rate_of_leave > 0,
                )
                .order_by(Employee.employee_code)
            )
        ).all()

        for balance_id, employee_id, rate, code in rows:
            rate = Decimal(rate)
            already = await db.execute(
                select(LeaveBalanceAdjustment.id).where(
                    LeaveBalanceAdjustment.leave_balance_id == balance_id,
                    LeaveBalanceAdjustment.allocation_slot == slot,
                )
            )
            if already.first() is not None:
                run.results.append(AllocationResult(
                    employee_id, code, balance_id, rate, "skipped",
                    "Already credited for this schedule slot",
                ))
                continue

            try:
                async with db.begin_nested():
                    previous, new_allocated = await _credit_balance(
                        db, balance_id, employee_id, rate, slot,
                    )
            except IntegrityError:
                run.results.append(AllocationResult(
                    employee_id, code, balance_id, rate, "skipped",
                    "Already credited for this schedule slot",
                ))
                continue
            except Exception as exc:
                logger.warning(
                    "Allocation failed for employee %s: %s", code, exc, exc_info=True,
                )
                run.results.append(AllocationResult(
                    employee_id, code, balance_id, rate, "error", f"Error: {exc}",
                ))
                continue

            run.results.append(AllocationResult(
                employee_id, code, balance_id, rate, "allocated",
                f"Successfully allocated {rate} days",
                previous_allocated=previous,
                new_allocated=new_allocated,
            ))

        if schedule is not None:
            schedule.last_run_at = slot
            try:
                schedule.next_run_at = CronExpression.parse(
                    schedule.cron_schedule
                ).next_after(slot, zone)
            except CronParseError:
                logger.warning(
                    "Stored cron schedule '%s' is invalid; next_run_at not advanced",
                    schedule.cron_schedule, exc_info=True,
                )
            await db.flush()
            await create_audit_entry(
                db,
                action="allocate",
                entity_type="leave_cron_settings",
                entity_id=schedule.id,
                new_values={
                    "slot": slot.isoformat(),
                    "manual": manual,
                    "allocated": run.allocated_count,
                    "skipped": run.skipped_count,
                    "errors": run.error_count,
                },
            )
        else:
            logger.warning("No active cron settings; run bookkeeping not updated")

        if not rows:
            run.message = "No employees found with rate_of_leave > 0"
        else:
            run.message = (
                f"Allocated {run.allocated_count}, skipped {run.skipped_count}, "
                f"failed {run.error_count}"
            )
        logger.info("Monthly allocation for slot %s: %s", slot.isoformat(), run.message)
        return run
