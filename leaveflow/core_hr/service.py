"""Core HR service layer — employees, comp-off credits, and the
employment-term leave-rate table that ``rate_of_leave`` is synced from."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import (
    DEFAULT_TERM_RATES,
    EmployeeStatus,
    EmploymentTerm,
)
from leaveflow.common.exceptions import ConflictError, NotFoundException
from leaveflow.common.timeutils import utcnow
from leaveflow.core_hr.models import Employee, EmploymentTermLeaveRate
from leaveflow.core_hr.schemas import EmployeeCreate

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# Employment-term leave rates
# ═════════════════════════════════════════════════════════════════════


class LeaveRateService:
    """Lookup and maintenance of monthly accrual rates per employment term."""

    @staticmethod
    async def get_leave_rate(
        db: AsyncSession,
        term: Optional[EmploymentTerm],
    ) -> Decimal:
        """Monthly rate for *term*; 0 when the employee has no term."""
        if term is None:
            return Decimal("0")
        result = await db.execute(
            select(EmploymentTermLeaveRate.leave_rate).where(
                EmploymentTermLeaveRate.employment_term == term
            )
        )
        rate = result.scalar_one_or_none()
        if rate is None:
            return DEFAULT_TERM_RATES.get(term, Decimal("0"))
        return Decimal(rate)

    @staticmethod
    async def list_leave_rates(db: AsyncSession) -> list[EmploymentTermLeaveRate]:
        result = await db.execute(
            select(EmploymentTermLeaveRate).order_by(EmploymentTermLeaveRate.employment_term)
        )
        return list(result.scalars().all())

    @staticmethod
    async def seed_defaults(db: AsyncSession) -> None:
        for term, rate in DEFAULT_TERM_RATES.items():
            existing = await db.execute(
                select(EmploymentTermLeaveRate).where(
                    EmploymentTermLeaveRate.employment_term == term
                )
            )
            if existing.scalars().first() is None:
                db.add(EmploymentTermLeaveRate(employment_term=term, leave_rate=rate))
        await db.flush()

    @staticmethod
    async def upsert_leave_rate(
        db: AsyncSession,
        term: EmploymentTerm,
        leave_rate: Decimal,
        *,
        description: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> tuple[EmploymentTermLeaveRate, int]:
        """Set the rate for *term* and push it onto every affected ledger row.

        Returns the rate row and the number of ledger rows rewritten.
        """
        result = await db.execute(
            select(EmploymentTermLeaveRate).where(
                EmploymentTermLeaveRate.employment_term == term
            )
        )
        row = result.scalars().first()
        old_rate = None
        if row is None:
            row = EmploymentTermLeaveRate(
                employment_term=term, leave_rate=leave_rate, description=description,
            )
            db.add(row)
        else:
            old_rate = row.leave_rate
            row.leave_rate = leave_rate
            if description is not None:
                row.description = description
        await db.flush()

        updated = await LeaveRateService.sync_rates_for_term(db, term, leave_rate)

        await create_audit_entry(
            db,
            action="update",
            entity_type="employment_term_leave_rate",
            entity_id=row.id,
            actor_id=actor_id,
            old_values={"leave_rate": str(old_rate) if old_rate is not None else None},
            new_values={"leave_rate": str(leave_rate)},
        )
        logger.info(
            "Leave rate for %s set to %s; %d balance(s) resynced",
            term.value, leave_rate, updated,
        )
        return row, updated

    @staticmethod
    async def sync_rates_for_term(
        db: AsyncSession,
        term: EmploymentTerm,
        leave_rate: Decimal,
    ) -> int:
        """Rewrite ``rate_of_leave`` on all ledger rows of employees with *term*."""
        from leaveflow.leave.models import LeaveBalance

        employee_ids = select(Employee.id).where(Employee.employment_term == term)
        result = await db.execute(
            update(LeaveBalance)
            .where(LeaveBalance.employee_id.in_(employee_ids))
            .values(rate_of_leave=leave_rate, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    @staticmethod
    async def sync_rates_for_employee(
        db: AsyncSession,
        employee: Employee,
        *,
        from_year: Optional[int] = None,
    ) -> int:
        """Rewrite ``rate_of_leave`` on the employee's current and future rows."""
        from leaveflow.leave.models import LeaveBalance

        rate = await LeaveRateService.get_leave_rate(db, employee.employment_term)
        year = from_year if from_year is not None else date.today().year
        result = await db.execute(
            update(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee.id,
                LeaveBalance.year >= year,
            )
            .values(rate_of_leave=rate, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


# ═════════════════════════════════════════════════════════════════════
# Employees
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Async employee operations used by the leave engine and HR."""

    @staticmethod
    async def get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        return employee

    @staticmethod
    async def list_employees(
        db: AsyncSession,
        *,
        status: Optional[EmployeeStatus] = None,
    ) -> list[Employee]:
        query = select(Employee).order_by(Employee.employee_code)
        if status is not None:
            query = query.where(Employee.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def create_employee(
        db: AsyncSession,
        data: EmployeeCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        existing = await db.execute(
            select(Employee).where(
                (Employee.employee_code == data.employee_code)
                | (func.lower(Employee.email) == data.email.lower())
            )
        )
        clash = existing.scalars().first()
        if clash is not None:
            if clash.employee_code == data.employee_code:
                raise ConflictError("employee_code", data.employee_code)
            raise ConflictError("email", data.email)

        if data.reporting_manager_id is not None:
            await EmployeeService.get_employee(db, data.reporting_manager_id)

        employee = Employee(**data.model_dump())
        db.add(employee)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            new_values={"employee_code": employee.employee_code},
        )
        return employee

    @staticmethod
    async def set_status(
        db: AsyncSession,
        employee_id: uuid.UUID,
        status: EmployeeStatus,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        employee = await EmployeeService.get_employee(db, employee_id)
        old = employee.status
        employee.status = status
        await db.flush()
        await create_audit_entry(
            db,
            action="update",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            old_values={"status": old.value},
            new_values={"status": status.value},
        )
        return employee

    @staticmethod
    async def set_employment_term(
        db: AsyncSession,
        employee_id: uuid.UUID,
        term: EmploymentTerm,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> tuple[Employee, int]:
        """Change an employee's term and resync ``rate_of_leave`` on their rows."""
        employee = await EmployeeService.get_employee(db, employee_id)
        old = employee.employment_term
        employee.employment_term = term
        await db.flush()

        updated = 0
        if old != term:
            updated = await LeaveRateService.sync_rates_for_employee(db, employee)
            logger.info(
                "Employee %s term %s → %s; %d balance(s) resynced",
                employee.employee_code, old.value if old else None, term.value, updated,
            )

        await create_audit_entry(
            db,
            action="update",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            old_values={"employment_term": old.value if old else None},
            new_values={"employment_term": term.value},
        )
        return employee, updated

    @staticmethod
    async def credit_comp_off(
        db: AsyncSession,
        employee_id: uuid.UUID,
        days: Decimal,
        reason: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        """Credit earned comp-off days to the employee's scalar balance."""
        result = await db.execute(
            select(Employee)
            .where(Employee.id == employee_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", employee_id)

        previous = Decimal(employee.comp_off_balance)
        employee.comp_off_balance = previous + days
        await db.flush()

        await create_audit_entry(
            db,
            action="credit_comp_off",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            old_values={"comp_off_balance": str(previous)},
            new_values={"comp_off_balance": str(employee.comp_off_balance), "reason": reason},
        )
        logger.info("Credited %s comp-off day(s) to %s", days, employee.employee_code)
        return employee
