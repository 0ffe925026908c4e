"""UTC date helpers shared by the stores and the reconciliation routines."""
from __future__ import annotations

import calendar
from datetime import datetime, time, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(value: datetime) -> datetime:
    value = as_utc(value)
    return datetime.combine(value.date(), time.min, tzinfo=timezone.utc)


def end_of_day(value: datetime) -> datetime:
    value = as_utc(value)
    return datetime.combine(value.date(), time.max, tzinfo=timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day to the target month length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
