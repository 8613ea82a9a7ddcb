"""Shared fixtures for availability_lite tests."""

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

import pytest

from availability_lite.calendar.models import Occurrence, RawEvent


def pytest_configure(config: Any) -> None:
    """Register markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests spanning several modules or the HTTP app")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear AVAILABILITY_* overrides so host settings never leak into tests."""
    for name in ("AVAILABILITY_TEST_TIME", "AVAILABILITY_TIMEZONE", "AVAILABILITY_DEBUG", "AVAILABILITY_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def utc_zone() -> ZoneInfo:
    """Viewer zone with no offset, so recurrence correction is a no-op."""
    return ZoneInfo("UTC")


@pytest.fixture
def la_zone() -> ZoneInfo:
    """Viewer zone with a DST change on 2024-03-10."""
    return ZoneInfo("America/Los_Angeles")


@pytest.fixture
def simple_settings() -> Any:
    """Lightweight fetch settings."""
    from types import SimpleNamespace

    return SimpleNamespace(request_timeout=5, max_retries=2, retry_backoff_factor=1.5)


@pytest.fixture
def make_event() -> Callable[..., RawEvent]:
    """Build a RawEvent; ``end`` defaults to one hour after ``start``."""

    def builder(
        uid: str,
        start: datetime,
        end: Optional[datetime] = None,
        summary: Optional[str] = None,
        **kwargs: Any,
    ) -> RawEvent:
        return RawEvent(
            uid=uid,
            summary=summary or uid,
            start=start,
            end=end or start + timedelta(hours=1),
            **kwargs,
        )

    return builder


@pytest.fixture
def make_occurrence() -> Callable[..., Occurrence]:
    """Build an Occurrence; ``end`` defaults to one hour after ``start``."""

    def builder(
        summary: str,
        start: datetime,
        end: Optional[datetime] = None,
        transparency: Optional[str] = None,
        uid: Optional[str] = None,
    ) -> Occurrence:
        uid = uid or summary.lower().replace(" ", "-")
        return Occurrence(
            id=uid,
            source_id=uid,
            summary=summary,
            transparency=transparency,
            date=start,
            end_date=end or start + timedelta(hours=1),
        )

    return builder


@pytest.fixture
def monday() -> datetime:
    """2024-01-15 00:00 UTC, a Monday."""
    return datetime(2024, 1, 15, tzinfo=UTC)


# ==================== ICS Test Data Fixtures ====================


@pytest.fixture
def sample_ics_simple() -> str:
    """A single "Team Lunch" event on 2024-01-15 12:00-13:00 UTC."""
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//availability_lite test//EN
BEGIN:VEVENT
UID:lunch-001@availability.test
DTSTAMP:20240110T090000Z
DTSTART:20240115T120000Z
DTEND:20240115T130000Z
SUMMARY:Team Lunch
END:VEVENT
END:VCALENDAR
"""


@pytest.fixture
def sample_ics_recurring() -> str:
    """Weekly "Weekly Review" with one EXDATE and one moved instance.

    - RRULE:FREQ=WEEKLY;COUNT=4 from 2024-01-15 14:00 UTC
    - EXDATE for 2024-01-22
    - RECURRENCE-ID 2024-01-29 moved to 2024-01-30 16:00 UTC
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//availability_lite test//EN
BEGIN:VEVENT
UID:review-001@availability.test
DTSTAMP:20240110T090000Z
DTSTART:20240115T140000Z
DTEND:20240115T150000Z
SUMMARY:Weekly Review
RRULE:FREQ=WEEKLY;COUNT=4
EXDATE:20240122T140000Z
TRANSP:OPAQUE
END:VEVENT
BEGIN:VEVENT
UID:review-001@availability.test
DTSTAMP:20240110T090000Z
RECURRENCE-ID:20240129T140000Z
DTSTART:20240130T160000Z
DTEND:20240130T170000Z
SUMMARY:Weekly Review (moved)
END:VEVENT
END:VCALENDAR
"""
