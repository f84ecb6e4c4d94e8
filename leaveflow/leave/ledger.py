"""Leave balance ledger: row lookup/creation under lock and relative deltas.

``used_days`` is only ever changed by a relative ``used_days + delta``
update while the row is locked, so concurrent approvals against the same
(employee, type, year) row commute.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import AdjustmentType
from leaveflow.common.exceptions import NotFoundException, ValidationException
from leaveflow.common.timeutils import utcnow
from leaveflow.core_hr.models import Employee
from leaveflow.core_hr.service import LeaveRateService
from leaveflow.leave.models import LeaveBalance, LeaveBalanceAdjustment, LeaveType

logger = logging.getLogger(__name__)


async def _select_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    *,
    lock: bool,
) -> Optional[LeaveBalance]:
    query = (
        select(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
        .execution_options(populate_existing=True)
    )
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalars().first()


async def get_or_create_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    *,
    lock: bool = True,
) -> tuple[LeaveBalance, bool]:
    """Return ``(balance, created)``.

    A missing row is created with ``allocated_days = 0`` and the employee's
    current employment-term rate, so approvals are never blocked by
    unprovisioned balances.
    """
    balance = await _select_balance(db, employee_id, leave_type_id, year, lock=lock)
    if balance is not None:
        return balance, False

    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundException("Employee", employee_id)
    rate = await LeaveRateService.get_leave_rate(db, employee.employment_term)

    try:
        async with db.begin_nested():
            balance = LeaveBalance(
                employee_id=employee_id,
                leave_type_id=leave_type_id,
                year=year,
                allocated_days=Decimal("0"),
                used_days=Decimal("0"),
                rate_of_leave=rate,
            )
            db.add(balance)
            await db.flush()
    except IntegrityError:
        # Another transaction created it first.
        balance = await _select_balance(db, employee_id, leave_type_id, year, lock=lock)
        if balance is None:
            raise
        return balance, False

    logger.warning(
        "Auto-created zero-allocation balance for employee %s, type %s, year %d",
        employee_id, leave_type_id, year,
    )
    return balance, True


async def apply_used_delta(
    db: AsyncSession,
    balance: LeaveBalance,
    delta: Decimal,
) -> list[str]:
    """Add *delta* to ``used_days`` and return soft warnings for the result."""
    warnings: list[str] = []
    if delta == 0:
        return warnings

    await db.execute(
        update(LeaveBalance)
        .where(LeaveBalance.id == balance.id)
        .values(used_days=LeaveBalance.used_days + delta, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.refresh(balance)

    used = Decimal(balance.used_days)
    allocated = Decimal(balance.allocated_days)
    logger.info(
        "Ledger %s used_days %+s → %s (allocated %s)",
        balance.id, delta, used, allocated,
    )
    if used < 0:
        msg = f"used_days for {balance.year} is negative ({used})"
        logger.warning("Ledger %s: %s", balance.id, msg)
        warnings.append(msg)
    elif used > allocated:
        msg = (
            f"used_days ({used}) exceeds allocated_days ({allocated}) "
            f"for {balance.year}"
        )
        logger.warning("Ledger %s: %s", balance.id, msg)
        warnings.append(msg)
    return warnings


async def get_balances(
    db: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
) -> list[LeaveBalance]:
    result = await db.execute(
        select(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.year == year,
        )
        .order_by(LeaveBalance.created_at)
    )
    return list(result.scalars().all())


async def adjust_allocation(
    db: AsyncSession,
    *,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    adjustment_type: AdjustmentType,
    amount: Decimal,
    reason: str,
    adjusted_by: Optional[uuid.UUID] = None,
) -> LeaveBalanceAdjustment:
    """Manually add to or subtract from ``allocated_days`` with an audit row."""
    if amount <= 0:
        raise ValidationException({"amount": ["Amount must be greater than zero."]})
    if await db.get(LeaveType, leave_type_id) is None:
        raise NotFoundException("LeaveType", leave_type_id)

    balance, _ = await get_or_create_balance(db, employee_id, leave_type_id, year)
    previous = Decimal(balance.allocated_days)
    signed = amount if adjustment_type == AdjustmentType.add else -amount
    new_allocated = previous + signed

    balance.allocated_days = new_allocated
    adjustment = LeaveBalanceAdjustment(
        employee_id=employee_id,
        leave_balance_id=balance.id,
        adjustment_type=adjustment_type,
        amount=amount,
        reason=reason,
        previous_allocated=previous,
        new_allocated=new_allocated,
        adjusted_by=adjusted_by,
    )
    db.add(adjustment)
    await db.flush()

    await create_audit_entry(
        db,
        action="adjust",
        entity_type="leave_balance",
        entity_id=balance.id,
        actor_id=adjusted_by,
        old_values={"allocated_days": str(previous)},
        new_values={"allocated_days": str(new_allocated), "reason": reason},
    )
    logger.info(
        "Balance %s allocated_days %s → %s (%s by %s)",
        balance.id, previous, new_allocated, adjustment_type.value, adjusted_by,
    )
    return adjustment
