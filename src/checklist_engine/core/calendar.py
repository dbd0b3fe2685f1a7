# src/checklist_engine/core/calendar.py

"""
Calendar-date helpers.

All scheduling works on plain calendar dates (no time-of-day component).
Weekdays use the 0..6 convention stored in the schema: 0 = Sunday, 6 = Saturday.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from .errors import ValidationError

SUNDAY = 0
SATURDAY = 6
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def to_local_date_string(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def parse_date(raw: str | date) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError as e:
        raise ValidationError(f"invalid date: {raw!r} (expected YYYY-MM-DD)") from e


def weekday_index(d: date) -> int:
    # isoweekday: Monday=1 .. Sunday=7
    return d.isoweekday() % 7


def add_days(d: date, n: int) -> date:
    return d + timedelta(days=int(n))


def first_on_or_after(start: date, weekday: int) -> date:
    """Smallest date >= start whose weekday_index equals weekday."""
    delta = (int(weekday) - weekday_index(start)) % 7
    return start + timedelta(days=delta)


def date_range(start: date, end: date) -> Iterator[date]:
    """Inclusive enumeration start..end (empty if end < start)."""
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def shift_months(d: date, months: int) -> date:
    """Move by whole months, clamping the day to the target month's length."""
    idx = d.year * 12 + (d.month - 1) + int(months)
    year, month0 = divmod(idx, 12)
    last = calendar.monthrange(year, month0 + 1)[1]
    return date(year, month0 + 1, min(d.day, last))


def utc_now() -> datetime:
    return datetime.now(UTC)


def today_in(tz: str | ZoneInfo, now: datetime | None = None) -> date:
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    current = now if now is not None else utc_now()
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)
    return current.astimezone(zone).date()


def parse_time_of_day(raw: str | time) -> time:
    if isinstance(raw, time):
        return raw.replace(second=0, microsecond=0)
    s = str(raw).strip()
    parts = s.split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
        return time(hour, minute)
    except (ValueError, IndexError) as e:
        raise ValidationError(f"invalid time of day: {raw!r} (expected HH:MM)") from e


def format_time_of_day(t: time) -> str:
    return f"{t.hour:02d}:{t.minute:02d}"


def round_down_to_slot(t: time, minutes: int = 15) -> time:
    """09:07 -> 09:00 for 15-minute slots."""
    step = max(1, int(minutes))
    return time(t.hour, (t.minute // step) * step)
