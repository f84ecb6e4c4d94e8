"""Status-change reconciliation engine.

An explicit state machine over leave application statuses. Every transition
into or out of ``approved`` mutates a ledger (the default bucket's yearly
row, or the employee's comp-off balance); all other transitions leave the
ledgers alone. The engine runs inside the caller's transaction so the status
change and its ledger effect commit together.

Soft anomalies (deficits, auto-created rows, a failed comp-off step) never
block a transition; they come back as ``TransitionResult.warnings``.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import LeaveCategory, LeaveStatus
from leaveflow.common.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from leaveflow.common.timeutils import utcnow
from leaveflow.core_hr.models import Employee
from leaveflow.leave import ledger, pairs
from leaveflow.leave.calculator import (
    SANDWICH_PENALTY,
    DeductionResult,
    compute_deduction,
    is_bridge_day,
)
from leaveflow.leave.models import LeaveApplication, LeaveType, LeaveWithdrawalLog
from leaveflow.leave.pairs import SiblingAdjustment
from leaveflow.leave.registry import LeaveTypeRegistry
from leaveflow.notifications.service import dispatch_leave_event

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Statuses that hold the dates they cover
OPEN_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)

# from-status → statuses it may move to
TRANSITIONS: dict[LeaveStatus, frozenset[LeaveStatus]] = {
    LeaveStatus.pending: frozenset({
        LeaveStatus.approved,
        LeaveStatus.rejected,
        LeaveStatus.cancelled,
        LeaveStatus.withdrawn,
    }),
    LeaveStatus.approved: frozenset({
        LeaveStatus.rejected,
        LeaveStatus.cancelled,
        LeaveStatus.withdrawn,
    }),
    LeaveStatus.rejected: frozenset({LeaveStatus.approved}),
    LeaveStatus.cancelled: frozenset(),
    LeaveStatus.withdrawn: frozenset(),
}


@dataclass
class TransitionResult:
    application: LeaveApplication
    previous_status: LeaveStatus
    new_status: LeaveStatus
    ledger_delta: Decimal = ZERO
    comp_off_delta: Decimal = ZERO
    sibling_adjustment: Optional[SiblingAdjustment] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.previous_status != self.new_status


def can_transition(from_status: LeaveStatus, to_status: LeaveStatus) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


# ── Birthday validation ─────────────────────────────────────────────


def birthday_on(date_of_birth: date, year: int) -> date:
    """The birthday in *year*; 29 Feb falls back to 28 Feb in common years."""
    if date_of_birth.month == 2 and date_of_birth.day == 29 and not calendar.isleap(year):
        return date(year, 2, 28)
    return date(year, date_of_birth.month, date_of_birth.day)


def validate_birthday_leave(
    application: LeaveApplication,
    employee: Employee,
) -> None:
    """Raise ValidationException unless the leave is a full day on the birthday."""
    errors: dict[str, list[str]] = {}
    if employee.date_of_birth is None:
        errors["date_of_birth"] = [
            "Birthday leave requires a date of birth on the employee record."
        ]
    elif application.start_date != birthday_on(
        employee.date_of_birth, application.start_date.year
    ):
        errors["start_date"] = ["Birthday leave must be taken on the employee's birthday."]
    if not application.is_single_day:
        errors.setdefault("end_date", []).append("Birthday leave must be a single day.")
    if application.is_half_day:
        errors["is_half_day"] = ["Birthday leave cannot be a half day."]
    if errors:
        raise ValidationException(errors)


# ── Pricing ─────────────────────────────────────────────────────────


async def price_application(
    db: AsyncSession,
    application: LeaveApplication,
) -> DeductionResult:
    """Run the sandwich calculator with the employee's pair context."""
    sibling = None
    if application.is_single_day and not application.is_half_day:
        sibling = await pairs.find_sibling(db, application)
    return compute_deduction(
        application.start_date,
        application.end_date,
        is_half_day=application.is_half_day,
        lop_days=Decimal(application.lop_days or 0),
        paired_leave_exists=sibling is not None,
    )


async def resolve_ledger_type_id(
    db: AsyncSession,
    leave_type: LeaveType,
    warnings: list[str],
) -> uuid.UUID:
    """Ledger row type for ordinary leave: the default bucket if configured."""
    bucket = await LeaveTypeRegistry.get_default_bucket(db)
    if bucket is not None:
        return bucket.id
    msg = "No default leave bucket configured; charging the application's own leave type"
    logger.warning(msg)
    warnings.append(msg)
    return leave_type.id


async def _apply_ledger_delta(
    db: AsyncSession,
    employee_id: uuid.UUID,
    ledger_type_id: uuid.UUID,
    year: int,
    delta: Decimal,
    warnings: list[str],
) -> None:
    balance, created = await ledger.get_or_create_balance(
        db, employee_id, ledger_type_id, year,
    )
    if created:
        warnings.append(
            f"No leave balance existed for {year}; created one with 0 allocated days"
        )
    warnings.extend(await ledger.apply_used_delta(db, balance, delta))


async def _shift_comp_off(
    db: AsyncSession,
    employee_id: uuid.UUID,
    delta: Decimal,
) -> Decimal:
    """Add *delta* to comp_off_balance under a row lock; returns the new value."""
    result = await db.execute(
        select(Employee)
        .where(Employee.id == employee_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    employee = result.scalars().one()
    employee.comp_off_balance = Decimal(employee.comp_off_balance) + delta
    await db.flush()
    return Decimal(employee.comp_off_balance)


async def _comp_off_step(
    db: AsyncSession,
    employee_id: uuid.UUID,
    delta: Decimal,
    result: TransitionResult,
) -> None:
    """Run a comp-off balance change in a SAVEPOINT; failures become warnings."""
    try:
        async with db.begin_nested():
            new_balance = await _shift_comp_off(db, employee_id, delta)
    except Exception as exc:
        msg = f"Comp-off balance update of {delta} failed: {exc}"
        logger.warning("Employee %s: %s", employee_id, msg, exc_info=True)
        result.warnings.append(msg)
        return

    result.comp_off_delta += delta
    logger.info("Employee %s comp_off_balance %+s → %s", employee_id, delta, new_balance)
    if new_balance < 0:
        msg = f"Insufficient comp-off balance; balance is now {new_balance}"
        logger.warning("Employee %s: %s", employee_id, msg)
        result.warnings.append(msg)


# ── Side-effect handlers ────────────────────────────────────────────


async def _on_enter_approved(
    db: AsyncSession,
    application: LeaveApplication,
    leave_type: LeaveType,
    employee: Employee,
    result: TransitionResult,
) -> None:
    if leave_type.category == LeaveCategory.birthday:
        validate_birthday_leave(application, employee)
        application.sandwich_deducted_days = ZERO
        application.sandwich_reason = "birthday leave; no balance deduction"
        application.is_sandwich_leave = False
        return

    if leave_type.category == LeaveCategory.compensatory_off:
        days = Decimal(application.days_count)
        before = result.comp_off_delta
        await _comp_off_step(db, application.employee_id, -days, result)
        # What the step applied; 0 if it rolled back.
        application.sandwich_deducted_days = before - result.comp_off_delta
        application.sandwich_reason = "compensatory off; charged to comp-off balance"
        application.is_sandwich_leave = False
        return

    if not leave_type.deducts_balance:
        application.sandwich_deducted_days = ZERO
        application.sandwich_reason = f"{leave_type.name} does not deduct balance"
        application.is_sandwich_leave = False
        return

    deduction = await price_application(db, application)
    application.sandwich_deducted_days = deduction.deducted_days
    application.sandwich_reason = deduction.reason
    application.is_sandwich_leave = deduction.is_sandwich

    ledger_type_id = await resolve_ledger_type_id(db, leave_type, result.warnings)
    await _apply_ledger_delta(
        db,
        application.employee_id,
        ledger_type_id,
        application.start_date.year,
        deduction.deducted_days,
        result.warnings,
    )
    result.ledger_delta += deduction.deducted_days

    if deduction.is_paired:
        sibling, adjustment = await pairs.reprice_sibling_on_approval(db, application)
        if adjustment is not None:
            await _apply_ledger_delta(
                db,
                sibling.employee_id,
                ledger_type_id,
                sibling.start_date.year,
                adjustment.delta,
                result.warnings,
            )
            result.ledger_delta += adjustment.delta
            result.sibling_adjustment = adjustment


async def _on_leave_approved(
    db: AsyncSession,
    application: LeaveApplication,
    leave_type: LeaveType,
    employee: Employee,
    result: TransitionResult,
) -> None:
    cached = application.sandwich_deducted_days
    if cached is None:
        msg = "No cached deduction on approved leave; restoring days_count"
        logger.warning("Leave %s: %s", application.id, msg)
        result.warnings.append(msg)
        restore = Decimal(application.days_count)
    else:
        restore = Decimal(cached)

    was_lone_bridge_day = (
        application.is_single_day
        and is_bridge_day(application.start_date)
        and application.is_sandwich_leave
        and restore == SANDWICH_PENALTY
    )

    application.sandwich_deducted_days = None
    application.sandwich_reason = None
    application.is_sandwich_leave = False

    if leave_type.category == LeaveCategory.birthday:
        return

    if leave_type.category == LeaveCategory.compensatory_off:
        if restore:
            await _comp_off_step(db, application.employee_id, restore, result)
        return

    if not leave_type.deducts_balance:
        return

    ledger_type_id = await resolve_ledger_type_id(db, leave_type, result.warnings)
    await _apply_ledger_delta(
        db,
        application.employee_id,
        ledger_type_id,
        application.start_date.year,
        -restore,
        result.warnings,
    )
    result.ledger_delta -= restore

    if was_lone_bridge_day:
        sibling, adjustment = await pairs.resolve_withdrawn_pair(db, application)
        if adjustment is not None:
            await _apply_ledger_delta(
                db,
                sibling.employee_id,
                ledger_type_id,
                sibling.start_date.year,
                adjustment.delta,
                result.warnings,
            )
            result.ledger_delta += adjustment.delta
            result.sibling_adjustment = adjustment


# ── Entry point ─────────────────────────────────────────────────────


async def find_overlapping_application(
    db: AsyncSession,
    employee_id: uuid.UUID,
    start_date: date,
    end_date: date,
    *,
    exclude_id: Optional[uuid.UUID] = None,
) -> Optional[uuid.UUID]:
    """Id of a pending or approved application sharing any day with the range."""
    query = select(LeaveApplication.id).where(
        LeaveApplication.employee_id == employee_id,
        LeaveApplication.status.in_(OPEN_STATUSES),
        LeaveApplication.start_date <= end_date,
        LeaveApplication.end_date >= start_date,
    )
    if exclude_id is not None:
        query = query.where(LeaveApplication.id != exclude_id)
    return (await db.execute(query.limit(1))).scalar_one_or_none()


async def lock_application(
    db: AsyncSession,
    application_id: uuid.UUID,
) -> LeaveApplication:
    result = await db.execute(
        select(LeaveApplication)
        .where(LeaveApplication.id == application_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    application = result.scalars().first()
    if application is None:
        raise NotFoundException("LeaveApplication", application_id)
    return application


async def transition(
    db: AsyncSession,
    application_id: uuid.UUID,
    new_status: LeaveStatus,
    *,
    actor_id: Optional[uuid.UUID] = None,
    remarks: Optional[str] = None,
) -> TransitionResult:
    """Move an application to *new_status* and apply its ledger effects.

    Same-status updates are no-ops. Disallowed pairs raise
    InvalidTransitionException; birthday-leave violations raise
    ValidationException before anything is written.
    """
    application = await lock_application(db, application_id)
    previous = application.status
    result = TransitionResult(
        application=application,
        previous_status=previous,
        new_status=new_status,
    )
    if previous == new_status:
        return result
    if not can_transition(previous, new_status):
        raise InvalidTransitionException(previous.value, new_status.value)
    # Rejected leave releases its dates.
    if previous == LeaveStatus.rejected and new_status == LeaveStatus.approved:
        clash = await find_overlapping_application(
            db,
            application.employee_id,
            application.start_date,
            application.end_date,
            exclude_id=application.id,
        )
        if clash is not None:
            raise ValidationException(
                {"start_date": [
                    f"These dates overlap leave application {clash}; "
                    "it cannot be re-approved."
                ]}
            )

    leave_type = await db.get(LeaveType, application.leave_type_id)
    if leave_type is None:
        raise NotFoundException("LeaveType", application.leave_type_id)
    employee = await db.get(Employee, application.employee_id)
    if employee is None:
        raise NotFoundException("Employee", application.employee_id)
    employee_email = employee.email

    cached = application.sandwich_deducted_days
    restored_days = ZERO
    if previous == LeaveStatus.approved and leave_type.category != LeaveCategory.birthday:
        restored_days = Decimal(cached if cached is not None else application.days_count)
    if new_status == LeaveStatus.approved:
        await _on_enter_approved(db, application, leave_type, employee, result)
    elif previous == LeaveStatus.approved:
        await _on_leave_approved(db, application, leave_type, employee, result)

    now = utcnow()
    application.status = new_status
    if new_status == LeaveStatus.approved:
        application.approved_by = actor_id
        application.approved_at = now
        application.reviewer_remarks = remarks
    elif new_status == LeaveStatus.rejected:
        application.reviewer_remarks = remarks
    elif new_status == LeaveStatus.withdrawn:
        application.withdrawn_by = actor_id
        application.withdrawal_reason = remarks
        application.withdrawn_at = now
        sibling = result.sibling_adjustment
        db.add(
            LeaveWithdrawalLog(
                leave_application_id=application.id,
                withdrawn_by=actor_id,
                reason=remarks,
                previous_status=previous,
                restored_days=restored_days,
                sibling_application_id=sibling.application_id if sibling else None,
                sibling_restored_days=-sibling.delta if sibling else ZERO,
                withdrawn_at=now,
            )
        )
    await db.flush()

    await create_audit_entry(
        db,
        action=new_status.value,
        entity_type="leave_application",
        entity_id=application.id,
        actor_id=actor_id,
        old_values={"status": previous.value},
        new_values={
            "status": new_status.value,
            "ledger_delta": result.ledger_delta,
            "comp_off_delta": result.comp_off_delta,
            "warnings": result.warnings,
        },
    )
    await dispatch_leave_event(
        db,
        application,
        recipient_id=application.employee_id,
        recipient_email=employee_email,
        actor_id=actor_id,
        extra={"warnings": result.warnings} if result.warnings else None,
    )

    logger.info(
        "Leave %s %s → %s (ledger %+s, comp-off %+s, %d warning(s))",
        application.id, previous.value, new_status.value,
        result.ledger_delta, result.comp_off_delta, len(result.warnings),
    )
    return result
