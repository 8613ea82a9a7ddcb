"""ICS parsing for availability_lite.

Reads an iCalendar document into ``RawEvent`` records keyed by UID. Overrides
(components carrying RECURRENCE-ID) are folded into their master's
``recurrences`` map rather than returned as separate records.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any, Optional

from icalendar import Calendar
from icalendar.prop import vRecur

from availability_lite.calendar.models import RawEvent, RecurrenceOverride
from availability_lite.exceptions import ICSParseError

logger = logging.getLogger(__name__)

# Components returned to the engine; only VEVENT records are expanded
PARSED_COMPONENTS = ("VEVENT", "VTODO", "VJOURNAL")

MAX_ICS_SIZE_BYTES = 50 * 1024 * 1024
MAX_ICS_SIZE_WARNING = 10 * 1024 * 1024

ALL_DAY_DURATION = timedelta(days=1)


def _as_datetime(value: date | datetime) -> datetime:
    """Date-only values become floating local midnight."""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time(0))


class ICSParser:
    """Parser turning ICS text into RawEvent records."""

    def __init__(self, tz: tzinfo):
        """Initialize parser.

        Args:
            tz: Viewer timezone, used to read floating UNTIL values
        """
        self.tz = tz

    def _validate_ics_size(self, ics_content: str) -> None:
        size_bytes = len(ics_content.encode("utf-8"))
        if size_bytes > MAX_ICS_SIZE_BYTES:
            raise ICSParseError(f"ICS content too large: {size_bytes} bytes exceeds {MAX_ICS_SIZE_BYTES} limit")
        if size_bytes > MAX_ICS_SIZE_WARNING:
            logger.warning("Large ICS content detected: %s bytes (threshold: %s)", size_bytes, MAX_ICS_SIZE_WARNING)

    def parse(self, ics_content: str, source_url: Optional[str] = None) -> dict[str, RawEvent]:
        """Parse ICS content into RawEvent records keyed by UID.

        Components that cannot be read are skipped with a warning.

        Raises:
            ICSParseError: If the content is empty, too large or not iCalendar
        """
        if not ics_content or not ics_content.strip():
            raise ICSParseError("Empty ICS content")
        self._validate_ics_size(ics_content)

        try:
            calendar = Calendar.from_ical(ics_content)
        except ValueError as e:
            raise ICSParseError(f"Invalid ICS content: {e}") from e

        events: dict[str, RawEvent] = {}
        overrides = []
        for component in calendar.walk():
            if component.name not in PARSED_COMPONENTS:
                continue
            if component.get("RECURRENCE-ID") is not None:
                overrides.append(component)
                continue
            try:
                event = self.parse_component(component)
            except (ValueError, TypeError, KeyError) as e:
                logger.warning("Skipping %s %s: %s", component.name, component.get("UID"), e)
                continue
            if event.uid in events:
                logger.debug("Duplicate UID %s, keeping the later record", event.uid)
            events[event.uid] = event

        for component in overrides:
            self._fold_override(events, component)

        logger.debug("Parsed %d records from %s", len(events), source_url or "ICS content")
        return events

    def parse_component(self, component: Any) -> RawEvent:
        """Build a RawEvent from a single VEVENT/VTODO/VJOURNAL component."""
        uid = str(component.get("UID") or uuid.uuid4())
        start = self._decoded(component, "DTSTART")
        end = self._end(component, start)

        rrule = None
        if component.get("RRULE") is not None and start is not None:
            rrule = self._rrule_text(component, start)

        summary = component.get("SUMMARY")
        transparency = component.get("TRANSP")
        return RawEvent(
            uid=uid,
            summary=str(summary) if summary is not None else None,
            start=start,
            end=end,
            rrule=rrule,
            exdates=self._exdates(component),
            transparency=str(transparency) if transparency is not None else None,
            kind=component.name,
        )

    def _decoded(self, component: Any, name: str) -> Optional[datetime]:
        if component.get(name) is None:
            return None
        return _as_datetime(component.decoded(name))

    def _end(self, component: Any, start: Optional[datetime]) -> Optional[datetime]:
        end = self._decoded(component, "DTEND") or self._decoded(component, "DUE")
        if end is not None or start is None:
            return end
        if component.get("DURATION") is not None:
            return start + component.decoded("DURATION")
        if not isinstance(component.decoded("DTSTART"), datetime):
            return start + ALL_DAY_DURATION
        return None

    def _rrule_text(self, component: Any, start: datetime) -> str:
        recur = component.get("RRULE")
        if isinstance(recur, list):
            recur = recur[0]
        until = recur.get("UNTIL")
        if until:
            recur = vRecur({**recur, "UNTIL": [self._until_utc(u, start) for u in until]})
        return recur.to_ical().decode()

    def _until_utc(self, until: date | datetime, start: datetime) -> datetime:
        """UNTIL as a UTC instant; local values are read in DTSTART's zone, or the viewer's when floating."""
        zone = start.tzinfo or self.tz
        if not isinstance(until, datetime):
            until = datetime.combine(until, time(23, 59, 59))
        if until.tzinfo is None:
            until = until.replace(tzinfo=zone)
        return until.astimezone(UTC)

    def _exdates(self, component: Any) -> list[datetime]:
        props = component.get("EXDATE")
        if props is None:
            return []
        if not isinstance(props, list):
            props = [props]
        return [_as_datetime(d.dt) for prop in props for d in prop.dts]

    def _fold_override(self, events: dict[str, RawEvent], component: Any) -> None:
        uid = str(component.get("UID"))
        master = events.get(uid)
        if master is None:
            logger.warning("Recurrence override for unknown UID %s, skipping", uid)
            return

        try:
            recurrence_id = _as_datetime(component.decoded("RECURRENCE-ID"))
            start = self._decoded(component, "DTSTART") or recurrence_id
            summary = component.get("SUMMARY")
            override = RecurrenceOverride(
                start=start,
                end=self._end(component, start),
                summary=str(summary) if summary is not None else None,
            )
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Skipping recurrence override of %s: %s", uid, e)
            return

        master.recurrences[recurrence_id.isoformat()] = override


def parse_ics(ics_content: str, tz: tzinfo, source_url: Optional[str] = None) -> dict[str, RawEvent]:
    """Parse ICS content with a throwaway parser."""
    return ICSParser(tz).parse(ics_content, source_url)
