"""Resolve a budget's recurrence kind into a concrete spending window."""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from .models import BUDGET_PERIODS, Period

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = "monthly"

# Inclusive upper bound of a calendar day, at millisecond resolution.
END_OF_DAY = time(23, 59, 59, 999000)

Bound = Union[date, datetime, None]


def _start_of(day: date, tz) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def _end_of(day: date, tz) -> datetime:
    return datetime.combine(day, END_OF_DAY, tzinfo=tz)


def _coerce_start(bound: Union[date, datetime], tz) -> datetime:
    if isinstance(bound, datetime):
        return bound if bound.tzinfo else bound.replace(tzinfo=tz)
    return _start_of(bound, tz)


def _coerce_end(bound: Union[date, datetime], tz) -> datetime:
    if isinstance(bound, datetime):
        return bound if bound.tzinfo else bound.replace(tzinfo=tz)
    # A bare date closes at the end of that day so the final day is included.
    return _end_of(bound, tz)


def calendar_window(period_kind: Optional[str], now: datetime) -> Period:
    """Window of the calendar period containing ``now``."""
    tz = now.tzinfo or timezone.utc
    today = now.date()
    if period_kind not in BUDGET_PERIODS:
        logger.warning(
            "Unknown budget period %r; falling back to %s", period_kind, DEFAULT_PERIOD
        )
        period_kind = DEFAULT_PERIOD

    if period_kind == "daily":
        first, last = today, today
    elif period_kind == "weekly":
        # Weeks start on Sunday; date.weekday() counts Monday as 0.
        first = today - timedelta(days=(today.weekday() + 1) % 7)
        last = first + timedelta(days=6)
    elif period_kind == "yearly":
        first, last = date(today.year, 1, 1), date(today.year, 12, 31)
    else:
        days_in_month = calendar.monthrange(today.year, today.month)[1]
        first = today.replace(day=1)
        last = today.replace(day=days_in_month)
    return Period(start=_start_of(first, tz), end=_end_of(last, tz))


def resolve_period(
    period_kind: Optional[str],
    explicit_start: Bound = None,
    explicit_end: Bound = None,
    now: Optional[datetime] = None,
) -> Period:
    """Return the window for ``period_kind`` at ``now``.

    Explicit bounds always win over the derived calendar window; each side is
    overridden independently. Unknown kinds resolve as monthly.
    """
    now = now or datetime.now(timezone.utc)
    tz = now.tzinfo or timezone.utc
    window = calendar_window(period_kind, now)
    start = _coerce_start(explicit_start, tz) if explicit_start is not None else window.start
    end = _coerce_end(explicit_end, tz) if explicit_end is not None else window.end
    return Period(start=start, end=end)
