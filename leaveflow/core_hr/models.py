"""Core HR ORM models: Employee and the employment-term leave rate table.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
Column names match the PostgreSQL schema defined in 001_initial_schema.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leaveflow.common.constants import EmployeeStatus, EmploymentTerm, enum_values
from leaveflow.common.timeutils import utcnow
from leaveflow.database import Base


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """An employee. ``comp_off_balance`` is the undated comp-off ledger."""

    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )
    full_name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    status: Mapped[EmployeeStatus] = mapped_column(
        sa.Enum(EmployeeStatus, name="employee_status", values_callable=enum_values),
        nullable=False,
        default=EmployeeStatus.active,
    )
    employment_term: Mapped[Optional[EmploymentTerm]] = mapped_column(
        sa.Enum(EmploymentTerm, name="employment_term", values_callable=enum_values),
    )
    date_of_birth: Mapped[Optional[date]] = mapped_column(sa.Date)
    date_of_joining: Mapped[Optional[date]] = mapped_column(sa.Date)
    reporting_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    is_hr_admin: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False,
    )
    comp_off_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    __table_args__ = (
        sa.Index("ix_employees_status", "status"),
        sa.Index("ix_employees_employment_term", "employment_term"),
    )

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code} {self.full_name}>"


# ═════════════════════════════════════════════════════════════════════
# Employment-term leave rates
# ═════════════════════════════════════════════════════════════════════


class EmploymentTermLeaveRate(Base):
    """Monthly leave accrual (days/month) per employment term."""

    __tablename__ = "employment_term_leave_rates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employment_term: Mapped[EmploymentTerm] = mapped_column(
        sa.Enum(EmploymentTerm, name="employment_term", values_callable=enum_values),
        unique=True,
        nullable=False,
    )
    leave_rate: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0"),
    )
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    __table_args__ = (
        sa.CheckConstraint("leave_rate >= 0", name="ck_term_rate_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<EmploymentTermLeaveRate {self.employment_term} {self.leave_rate}>"
