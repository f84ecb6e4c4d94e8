"""Leave ORM models: LeaveType, LeaveBalance, LeaveApplication, and the
balance adjustment / withdrawal audit tables."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leaveflow.common.constants import (
    AdjustmentType,
    HalfDayPeriod,
    LeaveCategory,
    LeaveStatus,
    enum_values,
)
from leaveflow.common.timeutils import utcnow
from leaveflow.database import Base


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(sa.String(10), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    # Resolved once at creation; the engine never matches on ``name``.
    category: Mapped[LeaveCategory] = mapped_column(
        sa.Enum(LeaveCategory, name="leave_category", values_callable=enum_values),
        nullable=False,
        default=LeaveCategory.general,
    )
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    max_days_per_year: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 2))
    carry_forward: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    requires_approval: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True,
    )
    deducts_balance: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )


class LeaveBalance(Base):
    """Ledger row: one per (employee, leave type, year)."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", "year", name="uq_leave_balance"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    allocated_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    # May go negative or exceed allocated_days; never clamped.
    used_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    rate_of_leave: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    last_allocated_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    @property
    def remaining_days(self) -> Decimal:
        return Decimal(self.allocated_days) - Decimal(self.used_days)

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance {self.employee_id}/{self.leave_type_id}/{self.year} "
            f"allocated={self.allocated_days} used={self.used_days}>"
        )


class LeaveApplication(Base):
    __tablename__ = "leave_applications"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_date_order"),
        sa.CheckConstraint(
            "lop_days >= 0 AND lop_days <= days_count", name="ck_leave_lop_range"
        ),
        sa.Index("ix_leave_applications_employee_dates", "employee_id", "start_date"),
        sa.Index("ix_leave_applications_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    days_count: Mapped[Decimal] = mapped_column(sa.Numeric(6, 2), nullable=False)
    is_half_day: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    half_day_period: Mapped[Optional[HalfDayPeriod]] = mapped_column(
        sa.Enum(HalfDayPeriod, name="half_day_period", values_callable=enum_values)
    )
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", values_callable=enum_values),
        nullable=False,
        default=LeaveStatus.pending,
    )
    lop_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )

    # What was actually charged on the last approval. Never recomputed.
    sandwich_deducted_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 2))
    sandwich_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    is_sandwich_leave: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )

    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    reviewer_remarks: Mapped[Optional[str]] = mapped_column(sa.Text)
    withdrawn_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    withdrawal_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    withdrawn_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    applied_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    @property
    def is_single_day(self) -> bool:
        return self.start_date == self.end_date

    def __repr__(self) -> str:
        return (
            f"<LeaveApplication {self.id} {self.start_date}..{self.end_date} "
            f"{self.status}>"
        )


class LeaveBalanceAdjustment(Base):
    """Audit of every change to ``allocated_days`` (HR or scheduler)."""

    __tablename__ = "leave_balance_adjustments"
    __table_args__ = (
        # One scheduled credit per ledger row per cron slot.
        sa.UniqueConstraint(
            "leave_balance_id", "allocation_slot", name="uq_adjustment_slot"
        ),
        sa.CheckConstraint("amount > 0", name="ck_adjustment_amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_balance_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_balances.id", ondelete="CASCADE"),
        nullable=False,
    )
    adjustment_type: Mapped[AdjustmentType] = mapped_column(
        sa.Enum(AdjustmentType, name="adjustment_type", values_callable=enum_values),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(sa.Numeric(6, 2), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    previous_allocated: Mapped[Decimal] = mapped_column(sa.Numeric(6, 2), nullable=False)
    new_allocated: Mapped[Decimal] = mapped_column(sa.Numeric(6, 2), nullable=False)
    adjusted_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    allocation_slot: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )


class LeaveWithdrawalLog(Base):
    """One row per withdrawal of an approved application."""

    __tablename__ = "leave_withdrawal_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    leave_application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    withdrawn_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    previous_status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", values_callable=enum_values),
        nullable=False,
    )
    restored_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    sibling_application_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_applications.id")
    )
    sibling_restored_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    withdrawn_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )
