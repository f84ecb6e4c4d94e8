"""Core HR Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from leaveflow.common.constants import EmployeeStatus, EmploymentTerm


class EmployeeCreate(BaseModel):
    employee_code: str = Field(..., min_length=1, max_length=20)
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    employment_term: Optional[EmploymentTerm] = None
    date_of_birth: Optional[date] = None
    date_of_joining: Optional[date] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    is_hr_admin: bool = False


class EmployeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    email: str
    status: EmployeeStatus
    employment_term: Optional[EmploymentTerm] = None
    date_of_birth: Optional[date] = None
    date_of_joining: Optional[date] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    is_hr_admin: bool
    comp_off_balance: Decimal
    created_at: datetime


class EmploymentTermUpdate(BaseModel):
    employment_term: EmploymentTerm


class EmployeeStatusUpdate(BaseModel):
    status: EmployeeStatus


class CompOffCreditRequest(BaseModel):
    days: Decimal = Field(..., gt=0, le=10)
    reason: str = Field(..., min_length=3, max_length=500)


class LeaveRateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employment_term: EmploymentTerm
    leave_rate: Decimal
    description: Optional[str] = None


class LeaveRateUpdate(BaseModel):
    employment_term: EmploymentTerm
    leave_rate: Decimal = Field(..., ge=0, le=31)
    description: Optional[str] = None


class RateSyncOut(BaseModel):
    employment_term: EmploymentTerm
    leave_rate: Decimal
    balances_updated: int
