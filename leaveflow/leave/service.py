"""Leave service layer — applications, approvals, balances, previews.

Business logic:
  - Leave application with date, half-day, overlap and birthday validation
  - Approve / reject / withdraw / cancel through the reconciliation engine
  - LOP marking before approval
  - Balance views, HR allocation adjustments, deduction previews
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.audit import AuditTrail, create_audit_entry, get_entity_history
from leaveflow.common.constants import EmployeeStatus, LeaveCategory, LeaveStatus
from leaveflow.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leaveflow.common.pagination import paginate_rows
from leaveflow.core_hr.models import Employee
from leaveflow.leave import engine, ledger
from leaveflow.leave.calculator import breakdown, compute_deduction, paired_day
from leaveflow.leave.engine import TransitionResult
from leaveflow.leave.models import LeaveApplication, LeaveBalanceAdjustment, LeaveType
from leaveflow.leave.pairs import find_approved_on
from leaveflow.leave.registry import LeaveTypeRegistry
from leaveflow.leave.schemas import (
    BalanceAdjustRequest,
    DeductionPreviewOut,
    DeductionPreviewRequest,
    EmployeeBalancesOut,
    LeaveApplicationCreate,
    LeaveApplicationListOut,
    LeaveApplicationOut,
    LeaveBalanceOut,
)
from leaveflow.notifications.service import dispatch_leave_event

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: applications, decisions, balances."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        return employee

    @staticmethod
    async def _get_application(
        db: AsyncSession,
        application_id: uuid.UUID,
    ) -> LeaveApplication:
        application = await db.get(LeaveApplication, application_id)
        if application is None:
            raise NotFoundException("LeaveApplication", application_id)
        return application

    @staticmethod
    async def _require_hr(db: AsyncSession, actor_id: uuid.UUID) -> Employee:
        actor = await LeaveService._get_employee(db, actor_id)
        if not actor.is_hr_admin:
            raise ForbiddenException("This action requires an HR administrator.")
        return actor

    @staticmethod
    async def _require_approver(
        db: AsyncSession,
        application: LeaveApplication,
        approver_id: uuid.UUID,
    ) -> None:
        """Approver must be the applicant's reporting manager or HR."""
        if application.employee_id == approver_id:
            raise ForbiddenException("You cannot decide on your own leave application.")
        approver = await LeaveService._get_employee(db, approver_id)
        if approver.is_hr_admin:
            return
        applicant = await LeaveService._get_employee(db, application.employee_id)
        if applicant.reporting_manager_id != approver_id:
            raise ForbiddenException(
                "You are not authorized to decide on this leave application."
            )

    @staticmethod
    async def _require_owner_or_hr(
        db: AsyncSession,
        application: LeaveApplication,
        actor_id: uuid.UUID,
    ) -> None:
        if application.employee_id == actor_id:
            return
        actor = await LeaveService._get_employee(db, actor_id)
        if not actor.is_hr_admin:
            raise ForbiddenException("You can only change your own leave applications.")

    @staticmethod
    def _days_count(data: LeaveApplicationCreate) -> Decimal:
        if data.is_half_day:
            return Decimal("0.5")
        return Decimal((data.end_date - data.start_date).days + 1)

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveApplicationCreate,
    ) -> TransitionResult:
        """Create a pending application.

        Types that do not require approval are approved straight away
        through the engine.
        """
        employee = await LeaveService._get_employee(db, employee_id)
        if employee.status != EmployeeStatus.active:
            raise ValidationException(
                {"employee": ["Only active employees can apply for leave."]}
            )

        leave_type = await db.get(LeaveType, data.leave_type_id)
        if leave_type is None or not leave_type.is_active:
            raise NotFoundException("LeaveType", data.leave_type_id)

        days_count = LeaveService._days_count(data)
        if leave_type.max_days_per_year is not None:
            year = data.start_date.year
            taken = await db.execute(
                select(func.coalesce(func.sum(LeaveApplication.days_count), 0)).where(
                    LeaveApplication.employee_id == employee_id,
                    LeaveApplication.leave_type_id == leave_type.id,
                    LeaveApplication.status.in_(engine.OPEN_STATUSES),
                    LeaveApplication.start_date >= date(year, 1, 1),
                    LeaveApplication.start_date <= date(year, 12, 31),
                )
            )
            booked = Decimal(str(taken.scalar_one()))
            if booked + days_count > Decimal(leave_type.max_days_per_year):
                raise ValidationException(
                    {"end_date": [
                        f"{leave_type.name} allows at most "
                        f"{leave_type.max_days_per_year} day(s) per year; "
                        f"{booked} already booked in {year}."
                    ]}
                )

        overlap = await engine.find_overlapping_application(
            db, employee_id, data.start_date, data.end_date,
        )
        if overlap is not None:
            raise ValidationException(
                {"start_date": ["These dates overlap an existing leave application."]}
            )

        application = LeaveApplication(
            employee_id=employee_id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            days_count=days_count,
            is_half_day=data.is_half_day,
            half_day_period=data.half_day_period,
            reason=data.reason,
            status=LeaveStatus.pending,
            lop_days=Decimal("0"),
        )
        if leave_type.category == LeaveCategory.birthday:
            engine.validate_birthday_leave(application, employee)

        db.add(application)
        await db.flush()

        await create_audit_entry(
            db,
            action="apply",
            entity_type="leave_application",
            entity_id=application.id,
            actor_id=employee_id,
            new_values={
                "start_date": data.start_date,
                "end_date": data.end_date,
                "days_count": days_count,
                "leave_type": leave_type.code,
            },
        )
        logger.info(
            "Employee %s applied for %s %s..%s (%s day(s))",
            employee.employee_code, leave_type.code,
            data.start_date, data.end_date, days_count,
        )

        if not leave_type.requires_approval:
            return await engine.transition(
                db,
                application.id,
                LeaveStatus.approved,
                remarks="auto-approved; leave type does not require approval",
            )

        if employee.reporting_manager_id is not None:
            manager = await db.get(Employee, employee.reporting_manager_id)
            await dispatch_leave_event(
                db,
                application,
                recipient_id=employee.reporting_manager_id,
                recipient_email=manager.email if manager else None,
                actor_id=employee_id,
            )

        return TransitionResult(
            application=application,
            previous_status=LeaveStatus.pending,
            new_status=LeaveStatus.pending,
        )

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        application_id: uuid.UUID,
        approver_id: uuid.UUID,
        *,
        remarks: Optional[str] = None,
    ) -> TransitionResult:
        application = await LeaveService._get_application(db, application_id)
        await LeaveService._require_approver(db, application, approver_id)
        return await engine.transition(
            db, application_id, LeaveStatus.approved,
            actor_id=approver_id, remarks=remarks,
        )

    @staticmethod
    async def reject_leave(
        db: AsyncSession,
        application_id: uuid.UUID,
        approver_id: uuid.UUID,
        reason: str,
    ) -> TransitionResult:
        application = await LeaveService._get_application(db, application_id)
        await LeaveService._require_approver(db, application, approver_id)
        return await engine.transition(
            db, application_id, LeaveStatus.rejected,
            actor_id=approver_id, remarks=reason,
        )

    @staticmethod
    async def withdraw_leave(
        db: AsyncSession,
        application_id: uuid.UUID,
        actor_id: uuid.UUID,
        *,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """Withdraw an application (the employee or an HR administrator)."""
        application = await LeaveService._get_application(db, application_id)
        await LeaveService._require_owner_or_hr(db, application, actor_id)
        return await engine.transition(
            db, application_id, LeaveStatus.withdrawn,
            actor_id=actor_id, remarks=reason,
        )

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        application_id: uuid.UUID,
        actor_id: uuid.UUID,
        *,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        application = await LeaveService._get_application(db, application_id)
        await LeaveService._require_owner_or_hr(db, application, actor_id)
        return await engine.transition(
            db, application_id, LeaveStatus.cancelled,
            actor_id=actor_id, remarks=reason,
        )

    @staticmethod
    async def set_lop_days(
        db: AsyncSession,
        application_id: uuid.UUID,
        actor_id: uuid.UUID,
        lop_days: Decimal,
    ) -> LeaveApplication:
        """Mark part of an application as Loss of Pay (HR, before approval)."""
        await LeaveService._require_hr(db, actor_id)
        application = await engine.lock_application(db, application_id)
        if application.status == LeaveStatus.approved:
            raise ValidationException(
                {"lop_days": ["LOP cannot change on an approved application."]}
            )
        if lop_days < 0 or lop_days > Decimal(application.days_count):
            raise ValidationException(
                {"lop_days": [
                    f"LOP days must be between 0 and {application.days_count}."
                ]}
            )
        old = application.lop_days
        application.lop_days = lop_days
        await db.flush()
        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_application",
            entity_id=application.id,
            actor_id=actor_id,
            old_values={"lop_days": old},
            new_values={"lop_days": lop_days},
        )
        return application

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_application(
        db: AsyncSession,
        application_id: uuid.UUID,
        viewer_id: uuid.UUID,
    ) -> LeaveApplication:
        application = await LeaveService._get_application(db, application_id)
        if application.employee_id == viewer_id:
            return application
        viewer = await LeaveService._get_employee(db, viewer_id)
        if viewer.is_hr_admin:
            return application
        applicant = await LeaveService._get_employee(db, application.employee_id)
        if applicant.reporting_manager_id != viewer_id:
            raise ForbiddenException("You cannot view this leave application.")
        return application

    @staticmethod
    async def get_application_history(
        db: AsyncSession,
        application_id: uuid.UUID,
        viewer_id: uuid.UUID,
    ) -> list[AuditTrail]:
        """Audit rows for an application, visible to whoever may view it."""
        application = await LeaveService.get_application(db, application_id, viewer_id)
        return await get_entity_history(db, "leave_application", application.id)

    @staticmethod
    async def list_applications(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        status: Optional[LeaveStatus] = None,
        year: Optional[int] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> LeaveApplicationListOut:
        query = (
            select(LeaveApplication)
            .where(LeaveApplication.employee_id == employee_id)
            .order_by(LeaveApplication.start_date.desc())
        )
        if status is not None:
            query = query.where(LeaveApplication.status == status)
        if year is not None:
            query = query.where(
                LeaveApplication.start_date >= date(year, 1, 1),
                LeaveApplication.start_date <= date(year, 12, 31),
            )
        rows, meta = await paginate_rows(db, query, page, page_size)
        return LeaveApplicationListOut(
            data=[LeaveApplicationOut.model_validate(r) for r in rows],
            meta=meta,
        )

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> EmployeeBalancesOut:
        employee = await LeaveService._get_employee(db, employee_id)
        balances = await ledger.get_balances(db, employee_id, year)
        return EmployeeBalancesOut(
            employee_id=employee_id,
            year=year,
            comp_off_balance=employee.comp_off_balance,
            balances=[LeaveBalanceOut.model_validate(b) for b in balances],
        )

    @staticmethod
    async def adjust_balance(
        db: AsyncSession,
        actor_id: uuid.UUID,
        data: BalanceAdjustRequest,
    ) -> LeaveBalanceAdjustment:
        """HR credit/debit on ``allocated_days``; defaults to the default bucket."""
        await LeaveService._require_hr(db, actor_id)
        await LeaveService._get_employee(db, data.employee_id)
        leave_type_id = data.leave_type_id
        if leave_type_id is None:
            bucket = await LeaveTypeRegistry.get_default_bucket(db)
            if bucket is None:
                raise ValidationException(
                    {"leave_type_id": ["No default leave bucket is configured."]}
                )
            leave_type_id = bucket.id
        return await ledger.adjust_allocation(
            db,
            employee_id=data.employee_id,
            leave_type_id=leave_type_id,
            year=data.year,
            adjustment_type=data.adjustment_type,
            amount=data.amount,
            reason=data.reason,
            adjusted_by=actor_id,
        )

    @staticmethod
    async def preview_deduction(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: DeductionPreviewRequest,
    ) -> DeductionPreviewOut:
        """Price a prospective leave without touching the ledger."""
        await LeaveService._get_employee(db, employee_id)
        paired = False
        other = paired_day(data.start_date)
        if data.start_date == data.end_date and not data.is_half_day and other:
            paired = await find_approved_on(db, employee_id, other) is not None
        result = compute_deduction(
            data.start_date,
            data.end_date,
            is_half_day=data.is_half_day,
            lop_days=data.lop_days,
            paired_leave_exists=paired,
        )
        parts = breakdown(data.start_date, data.end_date, result)
        return DeductionPreviewOut(
            deducted_days=result.deducted_days,
            reason=result.reason,
            is_sandwich=result.is_sandwich,
            total_days=parts.total_days,
            weekday_days=parts.weekday_days,
            weekend_days=parts.weekend_days,
            sandwich_days=parts.sandwich_days,
            has_paired_leave=parts.has_paired_leave,
        )
