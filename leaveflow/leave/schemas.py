"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leaveflow.common.constants import (
    AdjustmentType,
    HalfDayPeriod,
    LeaveCategory,
    LeaveStatus,
)
from leaveflow.common.pagination import PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)
    name: str = Field(..., min_length=1, max_length=100)
    category: Optional[LeaveCategory] = None
    description: Optional[str] = None
    max_days_per_year: Optional[Decimal] = Field(None, ge=0)
    carry_forward: bool = False
    requires_approval: bool = True
    deducts_balance: Optional[bool] = None


class LeaveTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    category: LeaveCategory
    description: Optional[str] = None
    max_days_per_year: Optional[Decimal] = None
    carry_forward: bool
    requires_approval: bool
    deducts_balance: bool
    is_active: bool


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    allocated_days: Decimal
    used_days: Decimal
    remaining_days: Decimal
    rate_of_leave: Decimal
    last_allocated_at: Optional[datetime] = None


class EmployeeBalancesOut(BaseModel):
    employee_id: uuid.UUID
    year: int
    comp_off_balance: Decimal
    balances: list[LeaveBalanceOut]


class BalanceAdjustRequest(BaseModel):
    """HR manual credit/debit on ``allocated_days``."""

    employee_id: uuid.UUID
    leave_type_id: Optional[uuid.UUID] = None
    year: int = Field(..., ge=2000, le=2100)
    adjustment_type: AdjustmentType
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=3, max_length=500)


class BalanceAdjustmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_balance_id: uuid.UUID
    adjustment_type: AdjustmentType
    amount: Decimal
    reason: str
    previous_allocated: Decimal
    new_allocated: Decimal
    adjusted_by: Optional[uuid.UUID] = None
    allocation_slot: Optional[datetime] = None
    created_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Leave Application
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationCreate(BaseModel):
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    is_half_day: bool = False
    half_day_period: Optional[HalfDayPeriod] = None
    reason: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _check_dates_and_half_day(self) -> "LeaveApplicationCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.is_half_day:
            if self.start_date != self.end_date:
                raise ValueError("A half-day leave must be a single day")
            if self.half_day_period is None:
                raise ValueError("half_day_period is required for a half-day leave")
        elif self.half_day_period is not None:
            raise ValueError("half_day_period is only allowed on a half-day leave")
        return self


class LeaveApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    days_count: Decimal
    is_half_day: bool
    half_day_period: Optional[HalfDayPeriod] = None
    reason: Optional[str] = None
    status: LeaveStatus
    lop_days: Decimal
    sandwich_deducted_days: Optional[Decimal] = None
    sandwich_reason: Optional[str] = None
    is_sandwich_leave: bool
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    reviewer_remarks: Optional[str] = None
    withdrawn_by: Optional[uuid.UUID] = None
    withdrawal_reason: Optional[str] = None
    withdrawn_at: Optional[datetime] = None
    applied_at: datetime


class LeaveApplicationListOut(BaseModel):
    data: list[LeaveApplicationOut]
    meta: PaginationMeta


class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: str
    actor_id: Optional[uuid.UUID] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    created_at: datetime


class LeaveApproveRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=1000)


class LeaveRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class LeaveWithdrawRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class LeaveCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class LopUpdateRequest(BaseModel):
    lop_days: Decimal = Field(..., ge=0)


class SiblingAdjustmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    application_id: uuid.UUID
    old_days: Decimal
    new_days: Decimal
    delta: Decimal


class TransitionOut(BaseModel):
    """Result of a status change, including soft warnings."""

    model_config = ConfigDict(from_attributes=True)

    application: LeaveApplicationOut
    previous_status: LeaveStatus
    new_status: LeaveStatus
    ledger_delta: Decimal
    comp_off_delta: Decimal
    sibling_adjustment: Optional[SiblingAdjustmentOut] = None
    warnings: list[str] = []


# ═════════════════════════════════════════════════════════════════════
# Deduction preview
# ═════════════════════════════════════════════════════════════════════


class DeductionPreviewRequest(BaseModel):
    start_date: date
    end_date: date
    is_half_day: bool = False
    lop_days: Decimal = Field(Decimal("0"), ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> "DeductionPreviewRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class DeductionPreviewOut(BaseModel):
    deducted_days: Decimal
    reason: str
    is_sandwich: bool
    total_days: int
    weekday_days: int
    weekend_days: int
    sandwich_days: Decimal
    has_paired_leave: bool
