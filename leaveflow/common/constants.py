"""Enums and constants for LeaveFlow, matching the PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Employee / Core HR ──────────────────────────────────────────────

class EmployeeStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    relieved = "relieved"


class EmploymentTerm(str, enum.Enum):
    full_time = "full_time"
    part_time = "part_time"
    associate = "associate"
    contract = "contract"
    probation_internship = "probation/internship"


# Monthly accrual used when a term has no row in employment_term_leave_rates.
DEFAULT_TERM_RATES: dict[EmploymentTerm, Decimal] = {
    EmploymentTerm.full_time: Decimal("1.5"),
    EmploymentTerm.part_time: Decimal("0"),
    EmploymentTerm.associate: Decimal("0"),
    EmploymentTerm.contract: Decimal("0"),
    EmploymentTerm.probation_internship: Decimal("0"),
}


# ── Leave ───────────────────────────────────────────────────────────

class LeaveCategory(str, enum.Enum):
    annual = "annual"
    general = "general"
    compensatory_off = "compensatory_off"
    birthday = "birthday"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    withdrawn = "withdrawn"


class HalfDayPeriod(str, enum.Enum):
    first_half = "1st_half"
    second_half = "2nd_half"


class AdjustmentType(str, enum.Enum):
    add = "add"
    subtract = "subtract"


# ── Notifications / outbox ──────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    approval = "approval"
    alert = "alert"
    leave_submitted = "leave_submitted"
    leave_approved = "leave_approved"
    leave_rejected = "leave_rejected"
    leave_withdrawn = "leave_withdrawn"
    leave_cancelled = "leave_cancelled"


class EmailStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    sent = "sent"
    failed = "failed"
    cancelled = "cancelled"


class EmailPriority(str, enum.Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum *values* (not member names) in sa.Enum columns."""
    return [member.value for member in enum_cls]
