"""Sandwich-leave calculator.

Prices a leave application in days charged against the ledger. Rules are
evaluated in order and the first match wins; LOP is subtracted last:

  1. half day                      → 0.5
  2. single Friday or Monday       → 2.0, or 1.0 when the paired day
                                     (Fri ↔ Mon of the same weekend) is
                                     already approved leave
  3. multi-day range               → calendar days, weekends included
     any other single day          → 1.0
  4. minus ``lop_days``, floored at 0
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

MONDAY = 0
FRIDAY = 4
SATURDAY = 5
SUNDAY = 6

HALF_DAY = Decimal("0.5")
ONE_DAY = Decimal("1")
SANDWICH_PENALTY = Decimal("2")
ZERO = Decimal("0")


@dataclass(frozen=True)
class DeductionResult:
    deducted_days: Decimal
    reason: str
    is_sandwich: bool
    is_paired: bool = False


@dataclass(frozen=True)
class DeductionBreakdown:
    total_days: int
    weekday_days: int
    weekend_days: int
    sandwich_days: Decimal
    has_paired_leave: bool


def paired_day(day: date) -> Optional[date]:
    """The other leg of a Friday/Monday pair, or None for any other weekday."""
    if day.weekday() == FRIDAY:
        return day + timedelta(days=3)
    if day.weekday() == MONDAY:
        return day - timedelta(days=3)
    return None


def is_bridge_day(day: date) -> bool:
    return day.weekday() in (FRIDAY, MONDAY)


def _iter_days(start_date: date, end_date: date):
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def _count_weekend_days(start_date: date, end_date: date) -> int:
    return sum(1 for d in _iter_days(start_date, end_date) if d.weekday() in (SATURDAY, SUNDAY))


def _fmt(days: Decimal) -> str:
    return format(days.normalize(), "f")


def compute_deduction(
    start_date: date,
    end_date: date,
    *,
    is_half_day: bool = False,
    lop_days: Decimal = ZERO,
    paired_leave_exists: bool = False,
) -> DeductionResult:
    """Return how many days an application costs the ledger.

    ``paired_leave_exists`` is True when the same employee already has an
    approved single-day leave on :func:`paired_day` of ``start_date``.
    """
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")

    lop = Decimal(lop_days or 0)
    single_day = start_date == end_date
    is_sandwich = False
    is_paired = False

    if is_half_day and single_day:
        base, reason = HALF_DAY, "half day"
    elif single_day and is_bridge_day(start_date):
        day_name = start_date.strftime("%A")
        if paired_leave_exists:
            base = ONE_DAY
            reason = f"{day_name} leave paired with leave on {paired_day(start_date).strftime('%A')}"
            is_paired = True
        else:
            base = SANDWICH_PENALTY
            reason = f"lone {day_name} leave charged as sandwich (weekend included)"
            is_sandwich = True
    elif single_day:
        base, reason = ONE_DAY, "single day"
    else:
        total = (end_date - start_date).days + 1
        weekend = _count_weekend_days(start_date, end_date)
        base = Decimal(total)
        if weekend:
            is_sandwich = True
            reason = f"{total} calendar days including {weekend} weekend day(s)"
        else:
            reason = f"{total} working days"

    deducted = base - lop
    if lop > ZERO:
        reason = f"{reason}; {_fmt(lop)} LOP day(s) excluded"
    if deducted < ZERO:
        deducted = ZERO

    return DeductionResult(
        deducted_days=deducted,
        reason=reason,
        is_sandwich=is_sandwich,
        is_paired=is_paired,
    )


def breakdown(
    start_date: date,
    end_date: date,
    result: DeductionResult,
) -> DeductionBreakdown:
    """Day counts behind a :class:`DeductionResult`, for previews."""
    total = (end_date - start_date).days + 1
    weekend = _count_weekend_days(start_date, end_date)
    sandwich_days = ZERO
    if result.is_sandwich:
        sandwich_days = (
            SANDWICH_PENALTY - ONE_DAY if total == 1 else Decimal(weekend)
        )
    return DeductionBreakdown(
        total_days=total,
        weekday_days=total - weekend,
        weekend_days=weekend,
        sandwich_days=sandwich_days,
        has_paired_leave=result.is_paired,
    )
