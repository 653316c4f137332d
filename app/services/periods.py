"""Calendar-aligned UTC periods. Buckets are half-open: [start, end)."""
from __future__ import annotations

import datetime as dt
from typing import Iterator, Tuple

PERIOD_TYPES = ("day", "week", "month")


def _check(period_type: str) -> None:
    if period_type not in PERIOD_TYPES:
        raise ValueError(f"Unknown period type: {period_type}")


def period_start(moment: dt.datetime, period_type: str) -> dt.datetime:
    """Start of the period containing ``moment`` (weeks start on Monday)."""
    _check(period_type)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if period_type == "day":
        return day
    if period_type == "week":
        return day - dt.timedelta(days=day.weekday())
    return day.replace(day=1)


def next_period_start(start: dt.datetime, period_type: str) -> dt.datetime:
    _check(period_type)
    if period_type == "day":
        return start + dt.timedelta(days=1)
    if period_type == "week":
        return start + dt.timedelta(days=7)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def period_bounds(moment: dt.datetime, period_type: str) -> Tuple[dt.datetime, dt.datetime]:
    start = period_start(moment, period_type)
    return start, next_period_start(start, period_type)


def iter_periods(
    earliest: dt.datetime, now: dt.datetime, period_type: str
) -> Iterator[Tuple[dt.datetime, dt.datetime]]:
    """Every bucket from the one containing ``earliest`` up to the one containing ``now``."""
    start = period_start(earliest, period_type)
    while start < now:
        end = next_period_start(start, period_type)
        yield start, end
        start = end
