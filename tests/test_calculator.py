"""Sandwich calculator — pure pricing rules, no database."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from leaveflow.leave.calculator import (
    breakdown,
    compute_deduction,
    is_bridge_day,
    paired_day,
)

# March 2026: Sun 1, Tue 3, Wed 4, Thu 5, Fri 6, Sat 7, Sun 8, Mon 9
TUE = date(2026, 3, 3)
WED = date(2026, 3, 4)
THU = date(2026, 3, 5)
FRI = date(2026, 3, 6)
SAT = date(2026, 3, 7)
SUN = date(2026, 3, 8)
MON = date(2026, 3, 9)


class TestPairedDay:

    def test_friday_pairs_with_following_monday(self):
        assert paired_day(FRI) == MON

    def test_monday_pairs_with_preceding_friday(self):
        assert paired_day(MON) == FRI

    def test_midweek_has_no_pair(self):
        assert paired_day(WED) is None
        assert paired_day(SAT) is None

    def test_bridge_days(self):
        assert is_bridge_day(FRI)
        assert is_bridge_day(MON)
        assert not is_bridge_day(TUE)


class TestSingleDay:

    def test_half_day_costs_half(self):
        result = compute_deduction(WED, WED, is_half_day=True)
        assert result.deducted_days == Decimal("0.5")
        assert result.is_sandwich is False

    def test_half_day_on_friday_is_not_sandwiched(self):
        """Half day wins over the lone-Friday rule."""
        result = compute_deduction(FRI, FRI, is_half_day=True)
        assert result.deducted_days == Decimal("0.5")
        assert result.is_sandwich is False

    def test_midweek_day_costs_one(self):
        result = compute_deduction(TUE, TUE)
        assert result.deducted_days == Decimal("1")
        assert result.reason == "single day"

    def test_lone_friday_costs_two(self):
        result = compute_deduction(FRI, FRI)
        assert result.deducted_days == Decimal("2")
        assert result.is_sandwich is True
        assert result.is_paired is False
        assert "Friday" in result.reason

    def test_lone_monday_costs_two(self):
        result = compute_deduction(MON, MON)
        assert result.deducted_days == Decimal("2")
        assert result.is_sandwich is True

    def test_paired_monday_costs_one(self):
        result = compute_deduction(MON, MON, paired_leave_exists=True)
        assert result.deducted_days == Decimal("1")
        assert result.is_sandwich is False
        assert result.is_paired is True
        assert "Friday" in result.reason

    def test_pair_flag_ignored_midweek(self):
        result = compute_deduction(WED, WED, paired_leave_exists=True)
        assert result.deducted_days == Decimal("1")
        assert result.is_paired is False


class TestRanges:

    def test_working_days_only(self):
        result = compute_deduction(TUE, THU)
        assert result.deducted_days == Decimal("3")
        assert result.is_sandwich is False
        assert result.reason == "3 working days"

    def test_range_spanning_weekend_counts_calendar_days(self):
        """Thu → Mon = 5 calendar days, Sat and Sun included."""
        result = compute_deduction(THU, MON)
        assert result.deducted_days == Decimal("5")
        assert result.is_sandwich is True
        assert "2 weekend day(s)" in result.reason

    def test_friday_to_monday_range(self):
        result = compute_deduction(FRI, MON)
        assert result.deducted_days == Decimal("4")
        assert result.is_sandwich is True

    def test_weekend_only_range(self):
        result = compute_deduction(SAT, SUN)
        assert result.deducted_days == Decimal("2")
        assert result.is_sandwich is True

    def test_end_before_start_raises(self):
        with pytest.raises(ValueError):
            compute_deduction(THU, TUE)


class TestLossOfPay:

    def test_lop_subtracted_last(self):
        result = compute_deduction(TUE, THU, lop_days=Decimal("0.9"))
        assert result.deducted_days == Decimal("2.1")
        assert "LOP" in result.reason

    def test_lop_on_lone_friday(self):
        result = compute_deduction(FRI, FRI, lop_days=Decimal("1"))
        assert result.deducted_days == Decimal("1")
        assert result.is_sandwich is True

    def test_lop_floors_at_zero(self):
        result = compute_deduction(WED, WED, is_half_day=True, lop_days=Decimal("1"))
        assert result.deducted_days == Decimal("0")


class TestBreakdown:

    def test_lone_friday_breakdown(self):
        result = compute_deduction(FRI, FRI)
        parts = breakdown(FRI, FRI, result)
        assert parts.total_days == 1
        assert parts.weekday_days == 1
        assert parts.weekend_days == 0
        assert parts.sandwich_days == Decimal("1")
        assert parts.has_paired_leave is False

    def test_weekend_range_breakdown(self):
        result = compute_deduction(THU, MON)
        parts = breakdown(THU, MON, result)
        assert parts.total_days == 5
        assert parts.weekday_days == 3
        assert parts.weekend_days == 2
        assert parts.sandwich_days == Decimal("2")

    def test_paired_breakdown(self):
        result = compute_deduction(MON, MON, paired_leave_exists=True)
        parts = breakdown(MON, MON, result)
        assert parts.sandwich_days == Decimal("0")
        assert parts.has_paired_leave is True
