"""Split a date range into the ordered windows the runner works through."""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple, Union

DateLike = Union[str, date]


class InvalidRangeError(ValueError):
    """Raised when a date range or window width cannot be planned."""


@dataclass(frozen=True)
class DateWindow:
    """Inclusive calendar-day slice of the overall range."""

    start: date
    end: date

    @property
    def start_str(self) -> str:
        return self.start.isoformat()

    @property
    def end_str(self) -> str:
        return self.end.isoformat()

    @property
    def key(self) -> str:
        return f"{self.start_str}:{self.end_str}"

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def parse_date(value: DateLike) -> date:
    """Return *value* as a calendar date, accepting ISO strings."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(str(value).strip()).date()
    except ValueError as exc:
        raise InvalidRangeError(f"Invalid date: {value!r}") from exc


def day_windows(start: DateLike, end: DateLike, window_days: int) -> List[DateWindow]:
    """Windows of exactly *window_days* days; the last one is truncated at *end*."""
    start_date, end_date = _validate_range(start, end)
    if isinstance(window_days, bool) or not isinstance(window_days, int) or window_days <= 0:
        raise InvalidRangeError(f"Invalid window days: {window_days!r}")

    windows: List[DateWindow] = []
    width = timedelta(days=window_days - 1)
    cursor = start_date
    while cursor <= end_date:
        window_end = min(cursor + width, end_date)
        windows.append(DateWindow(start=cursor, end=window_end))
        cursor = window_end + timedelta(days=1)
    return windows


def month_windows(start: DateLike, end: DateLike) -> List[DateWindow]:
    """One window per calendar month touched, clipped to *start* and *end*."""
    start_date, end_date = _validate_range(start, end)

    windows: List[DateWindow] = []
    year, month = start_date.year, start_date.month
    while date(year, month, 1) <= end_date:
        month_start = date(year, month, 1)
        month_end = date(year, month, calendar.monthrange(year, month)[1])
        windows.append(DateWindow(start=max(month_start, start_date), end=min(month_end, end_date)))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return windows


def plan_windows(start: DateLike, end: DateLike, window_days: Optional[int] = None) -> List[DateWindow]:
    """Month windows by default, fixed-width windows when *window_days* is set."""
    if window_days is None:
        return month_windows(start, end)
    return day_windows(start, end, window_days)


def describe_plan(window_days: Optional[int]) -> str:
    return f"{window_days}-day" if window_days else "monthly"


def _validate_range(start: DateLike, end: DateLike) -> Tuple[date, date]:
    start_date = parse_date(start)
    end_date = parse_date(end)
    if start_date > end_date:
        raise InvalidRangeError(f"Invalid date range: {start_date} is after {end_date}")
    return start_date, end_date
