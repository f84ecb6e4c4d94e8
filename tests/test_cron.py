"""Cron expression parsing and next-run computation."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from leaveflow.allocation.cron import CronExpression, CronParseError

UTC = timezone.utc
IST = ZoneInfo("Asia/Kolkata")


class TestParse:

    def test_monthly_default(self):
        expr = CronExpression.parse("0 0 1 * *")
        assert expr.minutes == frozenset({0})
        assert expr.hours == frozenset({0})
        assert expr.days == frozenset({1})
        assert expr.months == frozenset(range(1, 13))
        assert expr.day_restricted is True
        assert expr.weekday_restricted is False

    def test_steps_ranges_and_lists(self):
        expr = CronExpression.parse("*/15 9-17/4 1,15 1-3 *")
        assert expr.minutes == frozenset({0, 15, 30, 45})
        assert expr.hours == frozenset({9, 13, 17})
        assert expr.days == frozenset({1, 15})
        assert expr.months == frozenset({1, 2, 3})

    def test_sunday_seven_normalised(self):
        expr = CronExpression.parse("0 9 * * 7")
        assert expr.weekdays == frozenset({0})

    def test_whitespace_collapsed_in_source(self):
        assert CronExpression.parse("0  0 1 *   *").source == "0 0 1 * *"

    @pytest.mark.parametrize(
        "bad",
        [
            "",
            "0 0 1 *",
            "0 0 1 * * *",
            "60 0 1 * *",
            "0 24 1 * *",
            "0 0 0 * *",
            "0 0 1 13 *",
            "0 0 1 * 8",
            "0 0 5-1 * *",
            "*/0 0 1 * *",
            "0 0 1,,2 * *",
            "a 0 1 * *",
        ],
    )
    def test_malformed_expressions_rejected(self, bad):
        with pytest.raises(CronParseError):
            CronExpression.parse(bad)

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            CronExpression.parse("nope")


class TestNextAfter:

    def test_first_of_month_in_allocation_zone(self):
        """Midnight IST on the 1st is 18:30 UTC on the last day of the month before."""
        expr = CronExpression.parse("0 0 1 * *")
        nxt = expr.next_after(datetime(2026, 1, 15, 12, 0, tzinfo=UTC), IST)
        assert nxt == datetime(2026, 1, 31, 18, 30, tzinfo=UTC)
        assert nxt.tzinfo is not None

    def test_strictly_after_a_matching_moment(self):
        expr = CronExpression.parse("0 0 1 * *")
        nxt = expr.next_after(datetime(2026, 3, 1, 0, 0, tzinfo=UTC), UTC)
        assert nxt == datetime(2026, 4, 1, 0, 0, tzinfo=UTC)

    def test_every_fifteen_minutes(self):
        expr = CronExpression.parse("*/15 * * * *")
        nxt = expr.next_after(datetime(2026, 3, 2, 10, 7, 42, tzinfo=UTC))
        assert nxt == datetime(2026, 3, 2, 10, 15, tzinfo=UTC)

    def test_year_rollover(self):
        expr = CronExpression.parse("30 6 1 1 *")
        nxt = expr.next_after(datetime(2026, 6, 1, tzinfo=UTC))
        assert nxt == datetime(2027, 1, 1, 6, 30, tzinfo=UTC)

    def test_day_fields_combine_with_or(self):
        """'13th or Friday': from Sun 1 Mar 2026 the Friday on the 6th fires first."""
        expr = CronExpression.parse("0 0 13 * 5")
        nxt = expr.next_after(datetime(2026, 3, 1, tzinfo=UTC), UTC)
        assert nxt == datetime(2026, 3, 6, tzinfo=UTC)

    def test_weekday_only(self):
        expr = CronExpression.parse("0 9 * * 1")
        nxt = expr.next_after(datetime(2026, 3, 3, tzinfo=UTC), UTC)
        assert nxt == datetime(2026, 3, 9, 9, 0, tzinfo=UTC)

    def test_leap_day_schedule(self):
        expr = CronExpression.parse("0 0 29 2 *")
        nxt = expr.next_after(datetime(2026, 3, 1, tzinfo=UTC), UTC)
        assert nxt == datetime(2028, 2, 29, tzinfo=UTC)

    def test_naive_moment_treated_as_utc(self):
        expr = CronExpression.parse("0 12 * * *")
        nxt = expr.next_after(datetime(2026, 3, 2, 11, 0))
        assert nxt == datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

    def test_impossible_schedule_raises(self):
        expr = CronExpression.parse("0 0 31 2 *")
        with pytest.raises(CronParseError):
            expr.next_after(datetime(2026, 1, 1, tzinfo=UTC), UTC)

    def test_matches(self):
        expr = CronExpression.parse("0 0 1 * *")
        assert expr.matches(datetime(2026, 5, 1, 0, 0))
        assert not expr.matches(datetime(2026, 5, 2, 0, 0))
