"""Five-field cron expressions (minute hour day-of-month month day-of-week).

Each field accepts ``*``, ``*/N``, ``N``, ``N-M``, ``N-M/S`` and comma lists
of those. Day-of-week uses 0-6 with Sunday = 0 (7 is also Sunday). When both
day fields are restricted a day matches if either does, as in Vixie cron.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

_FIELDS: list[tuple[str, int, int]] = [
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day of month", 1, 31),
    ("month", 1, 12),
    ("day of week", 0, 7),
]

# Upper bound on how far next_after() searches (covers 29 Feb schedules).
_MAX_SEARCH_YEARS = 8


class CronParseError(ValueError):
    """Raised for a malformed cron expression."""


def _parse_number(token: str, name: str, low: int, high: int) -> int:
    if not token.isdigit():
        raise CronParseError(f"Invalid {name} value '{token}'")
    value = int(token)
    if value < low or value > high:
        raise CronParseError(f"{name} value {value} is outside {low}-{high}")
    return value


def _parse_field(expr: str, name: str, low: int, high: int) -> frozenset[int]:
    values: set[int] = set()
    for part in expr.split(","):
        if not part:
            raise CronParseError(f"Empty list item in {name} field '{expr}'")
        step = 1
        if "/" in part:
            part, step_token = part.split("/", 1)
            step = _parse_number(step_token, f"{name} step", 1, high - low + 1)
        if part == "*":
            start, end = low, high
        elif "-" in part:
            first, last = part.split("-", 1)
            start = _parse_number(first, name, low, high)
            end = _parse_number(last, name, low, high)
            if start > end:
                raise CronParseError(f"Descending range '{part}' in {name} field")
        else:
            start = _parse_number(part, name, low, high)
            end = high if step > 1 else start
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True)
class CronExpression:
    source: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    day_restricted: bool
    weekday_restricted: bool

    @classmethod
    def parse(cls, expr: str) -> "CronExpression":
        fields = expr.split() if expr else []
        if len(fields) != 5:
            raise CronParseError(
                f"Expected 5 fields (minute hour day month weekday), got {len(fields)}"
            )
        parsed = [
            _parse_field(token, name, low, high)
            for token, (name, low, high) in zip(fields, _FIELDS)
        ]
        # Normalise Sunday=7 onto 0.
        weekdays = frozenset(0 if d == 7 else d for d in parsed[4])
        return cls(
            source=" ".join(fields),
            minutes=parsed[0],
            hours=parsed[1],
            days=parsed[2],
            months=parsed[3],
            weekdays=weekdays,
            day_restricted=not fields[2].startswith("*"),
            weekday_restricted=not fields[4].startswith("*"),
        )

    def _day_matches(self, moment: datetime) -> bool:
        # Python: Monday=0 .. Sunday=6; cron: Sunday=0 .. Saturday=6
        cron_weekday = (moment.weekday() + 1) % 7
        day_ok = moment.day in self.days
        weekday_ok = cron_weekday in self.weekdays
        if self.day_restricted and self.weekday_restricted:
            return day_ok or weekday_ok
        return day_ok and weekday_ok

    def matches(self, moment: datetime) -> bool:
        return (
            moment.minute in self.minutes
            and moment.hour in self.hours
            and moment.month in self.months
            and self._day_matches(moment)
        )

    def next_after(self, moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
        """First matching minute strictly after *moment*.

        The schedule is evaluated in *tz* (or *moment*'s own zone, UTC when
        naive); the result is returned as an aware UTC datetime.
        """
        zone = tz or moment.tzinfo or timezone.utc
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        local = moment.astimezone(zone).replace(tzinfo=None)
        candidate = local.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = candidate.replace(year=candidate.year + _MAX_SEARCH_YEARS, day=1)

        while candidate < limit:
            if candidate.month not in self.months:
                year = candidate.year + (candidate.month == 12)
                month = candidate.month % 12 + 1
                candidate = candidate.replace(
                    year=year, month=month, day=1, hour=0, minute=0,
                )
                continue
            if not self._day_matches(candidate):
                candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if candidate.hour not in self.hours:
                candidate = (candidate + timedelta(hours=1)).replace(minute=0)
                continue
            if candidate.minute not in self.minutes:
                candidate += timedelta(minutes=1)
                continue
            return candidate.replace(tzinfo=zone).astimezone(timezone.utc)

        raise CronParseError(f"Schedule '{self.source}' never fires")
