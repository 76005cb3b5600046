"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import date, datetime, timedelta

import pendulum

DEFAULT_TZ = "America/Sao_Paulo"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def today_in_tz() -> date:
    return now_in_tz().date()


def yesterday_in_tz() -> date:
    return today_in_tz() - timedelta(days=1)


def parse_iso_date(value: str) -> date:
    return pendulum.parse(value).date()


def parse_legacy_datetime(value: str) -> datetime:
    """Parse a legacy timestamp keeping its wall-clock time.

    The legacy API sends ``2025-01-05T10:00:00-03:00`` for sale dates and
    plain ``2025-01-05`` for some issue dates. The offset is dropped, not
    converted, so the local business day never shifts.
    """
    parsed = pendulum.parse(value)
    if isinstance(parsed, pendulum.DateTime):
        return datetime(parsed.year, parsed.month, parsed.day, parsed.hour, parsed.minute, parsed.second)
    if isinstance(parsed, pendulum.Date):
        return datetime(parsed.year, parsed.month, parsed.day)
    raise ValueError(f"Not a date or datetime: {value!r}")


def from_epoch_millis(value: float) -> datetime:
    local = pendulum.from_timestamp(value / 1000, tz=timezone_name())
    return datetime(local.year, local.month, local.day, local.hour, local.minute, local.second)


def as_date(value: date | datetime | str) -> date:
    """Coerce a value read back from the database into a ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def format_year_month(value: date) -> str:
    return value.strftime("%Y-%m")


def month_bounds(value: date) -> tuple[date, date]:
    start = value.replace(day=1)
    if start.month == 12:
        next_month = start.replace(year=start.year + 1, month=1)
    else:
        next_month = start.replace(month=start.month + 1)
    return start, next_month - timedelta(days=1)


def months_between(start: date, end: date) -> list[str]:
    """Return every ``YYYY-MM`` overlapping ``start..end`` inclusive."""
    months: list[str] = []
    current = start.replace(day=1)
    while current <= end:
        months.append(format_year_month(current))
        current = month_bounds(current)[1] + timedelta(days=1)
    return months


def years_between(start: date, end: date) -> list[int]:
    return list(range(start.year, end.year + 1))
