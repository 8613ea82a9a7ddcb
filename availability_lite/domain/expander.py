"""Occurrence expansion for primary and plan calendar sources.

Turns RawEvent records (singular or recurring) into a flat list of dated
Occurrences inside a ``(window_start, window_end)`` window, expressed in the
viewer's zone.

Recurrence rules are enumerated with dateutil in UTC. DTSTART is handed over
on the UTC day equal to its local calendar day (``utc_anchor``), so day rules
such as BYDAY match local days while the raw instants sit one day off for
events whose local and UTC dates differ. Enumeration therefore starts one day
before the window, and every raw instant goes through
``correct_recurrence_shift`` and ``restore_wall_clock`` before UNTIL, EXDATE
and the window are applied.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta, tzinfo
from typing import Callable, Optional, Union, cast

from dateutil.parser import isoparse
from dateutil.rrule import rrulestr

from availability_lite.calendar.models import Occurrence, RawEvent
from availability_lite.core.timezone_utils import localize
from availability_lite.exceptions import RecurrenceExpansionError, RecurrenceParseError

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
DEFAULT_DURATION = timedelta(hours=1)
PLAN_MAX_DURATION = timedelta(hours=24)

# All-day public blocks on plan calendars are written in capitals
ALL_CAPS_SUMMARY = re.compile(r"^[A-Z\s]+$")

_UNTIL_PART = re.compile(r"UNTIL=(?P<value>[^;\s]*);?", re.IGNORECASE)

FailureCallback = Callable[[RawEvent, RecurrenceExpansionError], None]
RawEvents = Union[Iterable[RawEvent], Mapping[str, RawEvent]]


@dataclass
class ExpanderConfig:
    """Limits for recurrence enumeration."""

    max_occurrences_per_rule: int = 250
    lookback: timedelta = ONE_DAY


def utc_offset_minutes(instant: datetime, tz: tzinfo) -> int:
    """Minutes to add to local time to reach UTC at ``instant`` (positive west of UTC)."""
    offset = instant.astimezone(tz).utcoffset() or timedelta(0)
    return -int(offset.total_seconds() // 60)


def utc_anchor(start: datetime, tz: tzinfo) -> datetime:
    """DTSTART for UTC enumeration: the start instant moved onto the UTC day equal to its local day in ``tz``.

    Example: 18:00 on Monday in Los Angeles is 02:00Z on Tuesday; the anchor
    is 02:00Z on Monday.
    """
    instant = start.astimezone(UTC)
    return instant + (start.astimezone(tz).date() - instant.date())


def correct_recurrence_shift(raw: datetime, tz: tzinfo) -> datetime:
    """Move a UTC-anchored recurrence instant onto its intended local day.

    The raw instant is shifted by the local UTC offset. If that lands on a
    different local calendar day, the raw instant is moved one local day in
    the same direction (wall clock preserved across DST changes).

    Returns:
        The corrected instant, expressed in ``tz``.
    """
    local = raw.astimezone(tz)
    shifted = (raw + timedelta(minutes=utc_offset_minutes(raw, tz))).astimezone(tz)
    if shifted.date() == local.date():
        return local

    step = ONE_DAY if shifted > local else -ONE_DAY
    # Aware arithmetic on a ZoneInfo datetime is wall-clock arithmetic
    return (local + step).astimezone(tz)


def restore_wall_clock(instant: datetime, start: datetime, tz: tzinfo) -> datetime:
    """Nearest instant to ``instant`` that carries ``start``'s time of day in ``start``'s own zone.

    UTC enumeration keeps a fixed UTC time of day, so instances past a DST
    change drift by the DST delta. The result is expressed in ``tz``.
    """
    zone = start.tzinfo
    day = instant.astimezone(zone).date()
    target = instant.astimezone(UTC)
    candidates = [datetime.combine(day + timedelta(days=d), start.time(), tzinfo=zone) for d in (-1, 0, 1)]
    nearest = min(candidates, key=lambda c: abs(c.astimezone(UTC) - target))
    return nearest.astimezone(tz)


def split_until(rule_text: str, tz: tzinfo) -> tuple[str, Optional[datetime]]:
    """Remove UNTIL from rule text and return it as an aware datetime.

    A date-only UNTIL covers the whole local day; a value without ``Z`` is
    local time in ``tz``.

    Raises:
        ValueError: If the UNTIL value is not an iCalendar date or date-time
    """
    match = _UNTIL_PART.search(rule_text)
    if match is None:
        return rule_text, None

    value = match.group("value")
    until = isoparse(value)
    if len(value) == 8:
        until = datetime.combine(until.date(), time(23, 59, 59))
    stripped = (rule_text[: match.start()] + rule_text[match.end() :]).rstrip(";")
    return stripped, localize(until, tz)


def instance_id(uid: str, date: datetime) -> str:
    """Identifier for a generated instance: unambiguous ISO-8601 with offset."""
    return f"{uid}_{date.isoformat()}"


class OccurrenceExpander:
    """Expands raw events from one calendar source into occurrences."""

    def __init__(
        self,
        tz: tzinfo,
        config: Optional[ExpanderConfig] = None,
        on_failure: Optional[FailureCallback] = None,
    ):
        """Initialize expander.

        Args:
            tz: Viewer timezone; every occurrence is expressed in it
            config: Enumeration limits
            on_failure: Called once per event whose rule cannot be expanded.
                Defaults to logging a warning.
        """
        self.tz = tz
        self.config = config or ExpanderConfig()
        self.on_failure = on_failure or self._log_failure

    @staticmethod
    def _log_failure(event: RawEvent, error: RecurrenceExpansionError) -> None:
        logger.warning("Skipping recurring event %s (%r): %s", event.uid, event.summary, error)

    def expand(
        self, raw_events: RawEvents, window_start: datetime, window_end: datetime
    ) -> list[Occurrence]:
        """Expand every eligible event into occurrences strictly inside the window."""
        if isinstance(raw_events, Mapping):
            raw_events = raw_events.values()

        occurrences: list[Occurrence] = []
        for event in raw_events:
            if not event.is_schedulable or not self.is_eligible(event):
                continue
            occurrences.extend(self.expand_event(event, window_start, window_end))

        logger.debug("Expanded %d occurrences in window %s - %s", len(occurrences), window_start, window_end)
        return occurrences

    def is_eligible(self, event: RawEvent) -> bool:
        return True

    def expand_event(
        self, event: RawEvent, window_start: datetime, window_end: datetime
    ) -> list[Occurrence]:
        """Expand one event; a broken rule yields no occurrences and is reported."""
        if not event.is_recurring:
            start = self._start(event)
            if window_start < start < window_end:
                return [self._occurrence(event, start, self._end(event), event.uid)]
            return []

        try:
            until = self.rule_until(event)
            raw_instants = self.enumerate_rule(event, window_start - self.config.lookback, window_end)
        except RecurrenceExpansionError as e:
            self.on_failure(event, e)
            return []

        start = self._zoned_start(event)
        excluded = {localize(exdate, self.tz) for exdate in event.exdates}
        duration = self.duration(event)
        occurrences = []
        for raw in raw_instants:
            date = restore_wall_clock(correct_recurrence_shift(raw, self.tz), start, self.tz)
            if until is not None and date > until:
                continue
            if date in excluded or not window_start < date < window_end:
                continue
            occurrences.append(
                self._occurrence(event, date, self._after(date, duration), instance_id(event.uid, date))
            )
        return occurrences

    def rule_until(self, event: RawEvent) -> Optional[datetime]:
        """UNTIL bound of the event's rule as an aware datetime, if any.

        Raises:
            RecurrenceParseError: If UNTIL is malformed
        """
        try:
            return split_until(event.rrule or "", self.tz)[1]
        except (ValueError, OverflowError) as e:
            raise RecurrenceParseError(f"Invalid UNTIL in {event.rrule!r}: {e}", uid=event.uid) from e

    def enumerate_rule(self, event: RawEvent, after: datetime, before: datetime) -> list[datetime]:
        """Enumerate raw rule instants in ``(after, before)`` as UTC datetimes.

        The rule runs from ``utc_anchor`` of the event start with UNTIL removed;
        UNTIL and EXDATE apply to corrected instants in ``expand_event``.

        Raises:
            RecurrenceParseError: If the rule cannot be parsed or enumerated
        """
        rule_text = (event.rrule or "").strip()
        try:
            rule_text = split_until(rule_text, self.tz)[0]
            dtstart = utc_anchor(self._zoned_start(event), self.tz)
            rule_set = rrulestr(rule_text, dtstart=dtstart, forceset=True)
            instants = rule_set.between(after.astimezone(UTC), before.astimezone(UTC))
        except (ValueError, TypeError, KeyError, OverflowError) as e:
            raise RecurrenceParseError(f"Invalid recurrence rule {rule_text!r}: {e}", uid=event.uid) from e

        limit = self.config.max_occurrences_per_rule
        if len(instants) > limit:
            logger.warning(
                "Recurring event %s produced %d instants, limiting to %d", event.uid, len(instants), limit
            )
            instants = instants[:limit]

        return [i.astimezone(UTC) for i in instants]

    def _zoned_start(self, event: RawEvent) -> datetime:
        # Floating starts are read in the viewer zone; zoned starts keep their own zone
        start = cast(datetime, event.start)
        return start if start.tzinfo is not None else start.replace(tzinfo=self.tz)

    def duration(self, event: RawEvent) -> timedelta:
        """Source duration as an absolute interval."""
        if event.end is None:
            return DEFAULT_DURATION
        return self._end(event) - self._start(event)

    def _start(self, event: RawEvent) -> datetime:
        return localize(cast(datetime, event.start), self.tz)

    def _end(self, event: RawEvent) -> datetime:
        if event.end is None:
            return self._after(self._start(event), DEFAULT_DURATION)
        return localize(event.end, self.tz)

    def _after(self, date: datetime, duration: timedelta) -> datetime:
        # Absolute addition, not wall-clock, so DST changes keep the duration
        return (date.astimezone(UTC) + duration).astimezone(self.tz)

    def _occurrence(self, event: RawEvent, date: datetime, end_date: datetime, identifier: str) -> Occurrence:
        return Occurrence(
            id=identifier,
            source_id=event.uid,
            summary=event.summary,
            transparency=event.transparency,
            date=date,
            end_date=end_date,
        )


class PlanOccurrenceExpander(OccurrenceExpander):
    """Expander for plan calendars.

    Only events shorter than a day are eligible, except all-day blocks whose
    summary is all capitals. Recurrence exceptions contribute occurrences in
    addition to the rule expansion of the same event.
    """

    def is_eligible(self, event: RawEvent) -> bool:
        if self.duration(event) < PLAN_MAX_DURATION:
            return True
        return bool(ALL_CAPS_SUMMARY.match(event.summary or ""))

    def expand_event(
        self, event: RawEvent, window_start: datetime, window_end: datetime
    ) -> list[Occurrence]:
        occurrences = self.expand_exceptions(event, window_start, window_end)
        occurrences.extend(super().expand_event(event, window_start, window_end))
        return occurrences

    def expand_exceptions(
        self, event: RawEvent, window_start: datetime, window_end: datetime
    ) -> list[Occurrence]:
        """Occurrences from the recurrence exception map, using the source duration."""
        duration = self.duration(event)
        occurrences = []
        for override in event.recurrences.values():
            date = localize(override.start, self.tz)
            if window_start < date < window_end:
                occurrences.append(
                    self._occurrence(event, date, self._after(date, duration), instance_id(event.uid, date))
                )
        return occurrences


def expand(
    raw_events: RawEvents,
    window_start: datetime,
    window_end: datetime,
    tz: tzinfo,
    on_failure: Optional[FailureCallback] = None,
) -> list[Occurrence]:
    """Expand a primary calendar source."""
    return OccurrenceExpander(tz, on_failure=on_failure).expand(raw_events, window_start, window_end)


def expand_plan(
    raw_events: RawEvents,
    window_start: datetime,
    window_end: datetime,
    tz: tzinfo,
    on_failure: Optional[FailureCallback] = None,
) -> list[Occurrence]:
    """Expand a plan calendar source."""
    return PlanOccurrenceExpander(tz, on_failure=on_failure).expand(raw_events, window_start, window_end)
