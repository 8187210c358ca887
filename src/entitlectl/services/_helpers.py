"""Shared service-layer helper functions."""

from __future__ import annotations

import calendar
import re
import uuid
from datetime import UTC, date, datetime, time, timedelta

from entitlectl.domain.errors import ValidationError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2}")


def utc_now() -> datetime:
    """Current aware UTC datetime."""
    return datetime.now(UTC)


def now_iso() -> str:
    """Current UTC time as standard ISO 8601 (for audit trails, ledgers)."""
    return utc_now().isoformat()


def today_utc() -> date:
    """Today's date in UTC."""
    return utc_now().date()


def start_of_day(day: date) -> datetime:
    """Midnight UTC at the start of *day*."""
    return datetime.combine(day, time.min, tzinfo=UTC)


def new_id(prefix: str) -> str:
    """Random opaque identifier, e.g. ``sub_1a2b3c4d5e6f``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def parse_date(value: str, *, field: str) -> date:
    """Parse a ``YYYY-MM-DD`` value or raise :class:`ValidationError`."""
    if not _DATE_RE.match(value):
        raise ValidationError(f"{field} must be YYYY-MM-DD, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} is not a valid date: {value!r}") from exc


def parse_timestamp(value: str, *, field: str) -> datetime:
    """Parse a date or datetime into an aware UTC datetime.

    Accepts ``YYYY-MM-DD`` (midnight UTC) and ``YYYY-MM-DD HH:MM:SS`` or
    ISO 8601 with optional offset (naive values are taken as UTC).
    """
    if _DATE_RE.match(value):
        return start_of_day(parse_date(value, field=field))
    if not _DATETIME_RE.match(value):
        msg = f"{field} must be YYYY-MM-DD or YYYY-MM-DD HH:MM:SS, got {value!r}"
        raise ValidationError(msg)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} is not a valid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def add_months(day: date, months: int) -> date:
    """Shift *day* by *months*, clamping to the last day of the target month.

    Examples:
        >>> add_months(date(2026, 1, 31), 1)
        datetime.date(2026, 2, 28)
        >>> add_months(date(2026, 11, 15), 2)
        datetime.date(2027, 1, 15)
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def days_between(earlier: date, later: date) -> int:
    """Whole days from *earlier* to *later* (negative if reversed)."""
    return (later - earlier).days


def cutoff_iso(now: datetime, days: int) -> str:
    """ISO timestamp *days* before *now*, comparable with stored ``paid_at``."""
    return (now - timedelta(days=days)).isoformat()
