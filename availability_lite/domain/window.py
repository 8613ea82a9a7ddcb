"""Display horizon: day descriptors and the subset of days with occurrences."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, time, timedelta, tzinfo
from typing import Optional

from availability_lite.calendar.models import DayDescriptor, Occurrence

DAYS_PER_WEEK = 7
WEEKDAY_ABBREVIATIONS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def build_window(now: datetime, horizon_weeks: int) -> tuple[datetime, datetime]:
    """Expansion window from ``now`` through ``now`` plus the horizon."""
    return now, now + timedelta(weeks=horizon_weeks)


def day_label(index: int, day: datetime) -> str:
    if index == 0:
        return "Today"
    if index == 1:
        return "Tmrw"
    return WEEKDAY_ABBREVIATIONS[day.weekday()]


def build_days(now: datetime, tz: tzinfo, horizon_weeks: int) -> list[DayDescriptor]:
    """One descriptor per day of the horizon, starting at local midnight today."""
    today = now.astimezone(tz).date()
    days = []
    for i in range(horizon_weeks * DAYS_PER_WEEK):
        midnight = datetime.combine(today + timedelta(days=i), time(0), tzinfo=tz)
        days.append(DayDescriptor(date=midnight, label=day_label(i, midnight)))
    return days


def same_day(a: datetime, b: datetime) -> bool:
    """Calendar-day equality in the zone of ``b``."""
    if b.tzinfo is not None:
        a = a.astimezone(b.tzinfo)
    return a.date() == b.date()


def enabled_days(days: Sequence[DayDescriptor], occurrences: Iterable[Occurrence]) -> list[DayDescriptor]:
    """Days sharing a local calendar day with at least one occurrence, in order."""
    occupied = set()
    for occurrence in occurrences:
        for day in days:
            if same_day(occurrence.date, day.date):
                occupied.add(day.date)
                break
    return [d for d in days if d.date in occupied]


def select_day(current: Optional[datetime], enabled: Sequence[DayDescriptor]) -> Optional[datetime]:
    """Keep the selected day while it is enabled, otherwise fall back to the first enabled day."""
    if not enabled:
        return current
    if current is not None and any(same_day(current, d.date) for d in enabled):
        return current
    return enabled[0].date
