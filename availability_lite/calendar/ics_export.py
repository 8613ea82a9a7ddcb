"""Single-event ICS documents for "add to my calendar" downloads."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Optional

from dateutil import parser as date_parser
from icalendar import Calendar, Event

logger = logging.getLogger(__name__)

EXPORT_FILENAME = "event.ics"
PRODID = "-//availability_lite//event export//EN"


def parse_export_time(value: str) -> datetime:
    """Parse an ISO-8601 time for export; naive values are UTC.

    Raises:
        ValueError: If ``value`` is not ISO-8601
    """
    dt = date_parser.isoparse(value)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def build_event_ics(
    title: str,
    start: datetime,
    end: datetime,
    location: Optional[str] = None,
    uid: Optional[str] = None,
) -> bytes:
    """Build a one-event VCALENDAR with UTC start/end.

    Raises:
        ValueError: If ``end`` is not after ``start``
    """
    if end <= start:
        raise ValueError("Event end must be after its start")

    calendar = Calendar()
    calendar.add("prodid", PRODID)
    calendar.add("version", "2.0")

    event = Event()
    event.add("uid", uid or str(uuid.uuid4()))
    event.add("dtstamp", datetime.now(UTC))
    event.add("summary", title)
    event.add("description", "")
    event.add("location", location or "")
    event.add("dtstart", start.astimezone(UTC))
    event.add("dtend", end.astimezone(UTC))
    calendar.add_component(event)

    logger.debug("Built ICS export for %r (%s - %s)", title, start, end)
    return calendar.to_ical()
