"""
Date handling for reports: window filtering, month buckets and the named
ranges offered by the report screens.
"""
from __future__ import annotations
from datetime import date, timedelta
from typing import Any, Callable, Iterable, Optional, TypeVar

from ..items import coerce_date

T = TypeVar("T")

DATE_RANGE_PRESETS = ("last_7_days", "last_30_days", "last_90_days", "this_year")

_PRESET_DAYS = {"last_7_days": 7, "last_30_days": 30, "last_90_days": 90}


def in_window(value: Any, start: Any = None, end: Any = None) -> bool:
    """
    True when ``value`` falls in the inclusive window ``[start, end]``.

    Without both bounds every record is in the window. A record without a
    parseable date is outside any bounded window.
    """
    start, end = coerce_date(start), coerce_date(end)
    if start is None or end is None:
        return True
    day = coerce_date(value)
    if day is None:
        return False
    return start <= day <= end


def filter_window(
    records: Iterable[T],
    start: Any,
    end: Any,
    date_of: Callable[[T], Any],
) -> list[T]:
    return [r for r in records if in_window(date_of(r), start, end)]


def resolve_date_range(preset: str, today: Optional[date] = None) -> tuple[date, date]:
    """
    Turn a named range into ``(start, end)`` dates, both inclusive.

    >>> resolve_date_range("last_7_days", date(2025, 1, 31))
    (datetime.date(2025, 1, 24), datetime.date(2025, 1, 31))

    Raises:
        ValueError: For an unknown preset
    """
    today = today or date.today()
    if preset in _PRESET_DAYS:
        return today - timedelta(days=_PRESET_DAYS[preset]), today
    if preset == "this_year":
        return date(today.year, 1, 1), today
    raise ValueError(f"Unknown date range: {preset}. Valid: {', '.join(DATE_RANGE_PRESETS)}")


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


def month_name(day: date) -> str:
    return day.strftime("%b %Y")


def last_months(months: int = 6, today: Optional[date] = None) -> list[date]:
    """First day of each of the last ``months`` months, oldest first, ending with the current one."""
    today = today or date.today()
    result = []
    year, month = today.year, today.month
    for _ in range(months):
        result.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(result))
