"""Timezone helpers shared by the engine and the allocation scheduler."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime.

    Naive values are assumed to already be UTC (SQLite drops the offset).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def truncate_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)
