"""
Date normalization for governance records.

Every source field that can carry a due date (ISO strings, UK-style
DD/MM/YYYY strings typed into registers, sqlite timestamps, epoch numbers)
goes through parse_due, which returns a timezone-aware UTC datetime or None
and never raises. All window arithmetic is in UTC.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

_EMPTY_SENTINELS = frozenset({"", "—", "-", "na", "n/a"})
_UK_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")

# epoch numbers above this are milliseconds
_EPOCH_MS_THRESHOLD = 1e11


def clamp_int(value: Any, lo: int, hi: int, fallback: int) -> int:
    """Floor *value* into [lo, hi]; non-numeric input yields *fallback*."""
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return max(lo, min(hi, value))
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return max(lo, min(hi, math.floor(number)))


def utc_now() -> datetime:
    return datetime.now(UTC)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _parse_iso(text: str) -> datetime | None:
    candidate = text
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(candidate))
    except (ValueError, OverflowError):
        return None


def _parse_uk(text: str) -> datetime | None:
    match = _UK_DATE_RE.match(text)
    if not match:
        return None
    day = clamp_int(match.group(1), 1, 31, 1)
    month = clamp_int(match.group(2), 1, 12, 1)
    year = clamp_int(match.group(3), 1900, 3000, 2000)
    # 31/02 rolls forward into March rather than failing
    return datetime(year, month, 1, tzinfo=UTC) + timedelta(days=day - 1)


def parse_due(value: Any) -> datetime | None:
    """Normalize a heterogeneous date value to a UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), dates, epoch numbers,
    ISO strings and DD/MM/YYYY strings. Empty values and the placeholders
    "—", "-", "na" and "n/a" return None, as does anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)
    if isinstance(value, int | float):
        if not math.isfinite(value):
            return None
        seconds = value / 1000 if abs(value) > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None

    text = str(value).strip()
    if text.lower() in _EMPTY_SENTINELS:
        return None
    return _parse_iso(text) or _parse_uk(text)


def format_uk_date(dt: datetime) -> str:
    """DD/MM/YYYY of *dt* in UTC."""
    return _as_utc(dt).strftime("%d/%m/%Y")


def format_uk_date_any(value: Any) -> str:
    """Format any date-ish value as DD/MM/YYYY; echo the input if unparseable."""
    parsed = parse_due(value)
    if parsed is None:
        return "" if value is None else str(value).strip()
    return format_uk_date(parsed)


def iso_z(dt: datetime | None) -> str | None:
    """ISO-8601 with a trailing Z, millisecond precision."""
    if dt is None:
        return None
    return _as_utc(dt).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def start_of_utc_day(now: datetime | None = None) -> datetime:
    now = _as_utc(now) if now else utc_now()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_utc_day(day: datetime) -> datetime:
    return start_of_utc_day(day) + timedelta(days=1) - timedelta(milliseconds=1)


def parse_calendar_date(value: Any) -> date | None:
    """Parse a report period bound (YYYY-MM-DD or any ISO datetime)."""
    parsed = parse_due(value)
    return parsed.date() if parsed else None


def in_window(t: datetime | None, start: datetime, end: datetime) -> bool:
    """Inclusive on both ends."""
    if t is None:
        return False
    return start <= t <= end


@dataclass(frozen=True)
class TimeWindow:
    """A UTC look-ahead window, inclusive on both ends."""

    start: datetime
    end: datetime
    days: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"window start {self.start} is after end {self.end}")

    @classmethod
    def for_days(cls, days: int, now: datetime | None = None) -> TimeWindow:
        """Window from the start of today (UTC) to *days* days later."""
        start = start_of_utc_day(now)
        return cls(start=start, end=start + timedelta(days=days), days=days)

    @classmethod
    def trailing(cls, start: datetime, days: int) -> TimeWindow:
        """The *days* days immediately before *start*, excluding *start*."""
        return cls(
            start=start - timedelta(days=days),
            end=start - timedelta(microseconds=1),
            days=days,
        )

    def contains(self, t: datetime | None) -> bool:
        return in_window(t, self.start, self.end)

    def extended_back(self, days: int) -> TimeWindow:
        return TimeWindow(start=self.start - timedelta(days=days), end=self.end, days=self.days)
