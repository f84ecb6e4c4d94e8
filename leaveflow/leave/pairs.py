"""Friday/Monday pair resolver.

A lone Friday or Monday is charged 2.0 days. When the other leg of the same
weekend is approved as well, both legs are worth 1.0 each, so the leg that
was priced first has to be re-priced. The withdrawal path runs the same
correction for a leg left behind at 2.0.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import LeaveCategory, LeaveStatus
from leaveflow.leave.calculator import ONE_DAY, paired_day
from leaveflow.leave.models import LeaveApplication, LeaveType

logger = logging.getLogger(__name__)

LEDGER_CATEGORIES = (LeaveCategory.annual, LeaveCategory.general)


@dataclass(frozen=True)
class SiblingAdjustment:
    application_id: uuid.UUID
    old_days: Decimal
    new_days: Decimal
    delta: Decimal


async def find_approved_on(
    db: AsyncSession,
    employee_id: uuid.UUID,
    day: date,
    *,
    exclude_id: Optional[uuid.UUID] = None,
    priced_at: Optional[Decimal] = None,
    lock: bool = False,
) -> Optional[LeaveApplication]:
    """An approved, full, single-day ledger leave of *employee_id* on *day*."""
    query = (
        select(LeaveApplication)
        .join(LeaveType, LeaveType.id == LeaveApplication.leave_type_id)
        .where(
            LeaveApplication.employee_id == employee_id,
            LeaveApplication.start_date == day,
            LeaveApplication.end_date == day,
            LeaveApplication.status == LeaveStatus.approved,
            LeaveApplication.is_half_day.is_(False),
            LeaveType.category.in_(LEDGER_CATEGORIES),
            LeaveType.deducts_balance.is_(True),
        )
        .order_by(LeaveApplication.approved_at)
        .execution_options(populate_existing=True)
    )
    if exclude_id is not None:
        query = query.where(LeaveApplication.id != exclude_id)
    if priced_at is not None:
        query = query.where(LeaveApplication.sandwich_deducted_days == priced_at)
    if lock:
        query = query.with_for_update(of=LeaveApplication)
    result = await db.execute(query)
    return result.scalars().first()


async def find_sibling(
    db: AsyncSession,
    application: LeaveApplication,
    *,
    priced_at: Optional[Decimal] = None,
    lock: bool = False,
) -> Optional[LeaveApplication]:
    """The approved other leg of *application*'s Friday/Monday pair."""
    if not application.is_single_day or application.is_half_day:
        return None
    other = paired_day(application.start_date)
    if other is None:
        return None
    return await find_approved_on(
        db,
        application.employee_id,
        other,
        exclude_id=application.id,
        priced_at=priced_at,
        lock=lock,
    )


def reprice(sibling: LeaveApplication, reason: str) -> SiblingAdjustment:
    """Re-price *sibling* to 1.0 and return the ledger delta to apply."""
    old = Decimal(
        sibling.sandwich_deducted_days
        if sibling.sandwich_deducted_days is not None
        else sibling.days_count
    )
    new = ONE_DAY - Decimal(sibling.lop_days or 0)
    if new < 0:
        new = Decimal("0")
    sibling.sandwich_deducted_days = new
    sibling.is_sandwich_leave = False
    sibling.sandwich_reason = reason
    logger.info("Re-priced leave %s from %s to %s day(s)", sibling.id, old, new)
    return SiblingAdjustment(
        application_id=sibling.id,
        old_days=old,
        new_days=new,
        delta=new - old,
    )


async def reprice_sibling_on_approval(
    db: AsyncSession,
    application: LeaveApplication,
) -> tuple[Optional[LeaveApplication], Optional[SiblingAdjustment]]:
    """Called when *application* was priced as the second leg of a pair."""
    sibling = await find_sibling(db, application, lock=True)
    if sibling is None:
        return None, None
    adjustment = reprice(
        sibling,
        f"paired with leave on {application.start_date.isoformat()}; re-priced to single day",
    )
    if adjustment.delta == 0:
        return sibling, None
    return sibling, adjustment


async def resolve_withdrawn_pair(
    db: AsyncSession,
    application: LeaveApplication,
) -> tuple[Optional[LeaveApplication], Optional[SiblingAdjustment]]:
    """Called after a 2.0-priced Friday/Monday leg leaves ``approved``.

    The sibling still priced at 2.0 is shrunk to 1.0 (ledger delta -1.0).

    Approvals made here never leave both legs at 2.0, because approving the
    second leg already re-prices the first to 1.0 through
    :func:`reprice_sibling_on_approval`. Only rows priced before that
    repricing existed (imported history, or both legs charged 2.0 by the old
    system) reach this path. The end state then matches a normal pair: the
    withdrawal restores 2.0 and the sibling drops to 1.0, leaving 1.0 used
    for the pair.
    """
    sibling = await find_sibling(
        db, application, priced_at=Decimal("2"), lock=True,
    )
    if sibling is None:
        logger.info("No 2.0-priced sibling for withdrawn leave %s", application.id)
        return None, None
    adjustment = reprice(
        sibling,
        f"pair leg on {application.start_date.isoformat()} withdrawn; re-priced to single day",
    )
    return sibling, adjustment
