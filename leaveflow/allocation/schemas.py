"""Allocation Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leaveflow.allocation.cron import CronExpression, CronParseError


class CronSettingsUpdate(BaseModel):
    cron_schedule: str = Field(..., min_length=9, max_length=100)
    end_date: date
    is_active: bool = True

    @field_validator("cron_schedule")
    @classmethod
    def _valid_cron(cls, value: str) -> str:
        try:
            return CronExpression.parse(value).source
        except CronParseError as exc:
            raise ValueError(str(exc)) from exc


class CronSettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    cron_schedule: str
    end_date: date
    is_active: bool
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    updated_by: Optional[uuid.UUID] = None


class AllocationResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    employee_code: str
    leave_balance_id: uuid.UUID
    previous_allocated: Decimal
    new_allocated: Decimal
    amount: Decimal
    status: str
    message: str


class AllocationRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    manual: bool
    slot: Optional[datetime] = None
    message: str
    allocated_count: int
    skipped_count: int
    error_count: int
    results: list[AllocationResultOut] = []
