"""Calendar periods for the monthly batch jobs."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from ...config import settings


def previous_period(today: date | datetime | None = None, tz: str | None = None) -> tuple[int, int]:
    """(year, month) of the month before ``today`` in the service timezone.

    Aware datetimes are converted to ``tz`` first, so a run at 2024-03-31T16:00Z
    (already April 1st in Seoul) settles March.
    """
    zone = ZoneInfo(tz or settings.timezone)
    if today is None:
        local = datetime.now(zone).date()
    elif isinstance(today, datetime):
        local = (today.astimezone(zone) if today.tzinfo else today).date()
    else:
        local = today
    first_of_month = local.replace(day=1)
    last_month = first_of_month - timedelta(days=1)
    return last_month.year, last_month.month


def period_bounds(year: int, month: int, tz: str | None = None) -> tuple[datetime, datetime]:
    """Inclusive start and end of a month as timezone-aware datetimes."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month {month}")
    zone = ZoneInfo(tz or settings.timezone)
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1, tzinfo=zone)
    end = datetime(year, month, last_day, 23, 59, 59, 999999, tzinfo=zone)
    return start, end


def within(value: Optional[datetime], start: datetime, end: datetime) -> bool:
    if value is None:
        return False
    if value.tzinfo is None:
        value = value.replace(tzinfo=start.tzinfo)
    return start <= value <= end
