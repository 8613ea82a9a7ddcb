"""Timezone detection and time-source utilities for availability_lite."""

from __future__ import annotations

import datetime
import logging
import os
import time
import zoneinfo
from typing import ClassVar

logger = logging.getLogger(__name__)

# Default fallback timezone for all timezone operations
DEFAULT_VIEWER_TIMEZONE = "America/Los_Angeles"

TEST_TIME_ENV = "AVAILABILITY_TEST_TIME"


class TimezoneDetector:
    """Detects the host timezone using multiple fallback strategies."""

    TZ_ABBREV_MAP: ClassVar[dict[str, str]] = {
        "PST": "America/Los_Angeles",
        "PDT": "America/Los_Angeles",
        "EST": "America/New_York",
        "EDT": "America/New_York",
        "CST": "America/Chicago",
        "CDT": "America/Chicago",
        "MST": "America/Denver",
        "MDT": "America/Denver",
        "UTC": "UTC",
    }

    # Obsolete/deprecated IANA names found in older feeds and configs
    TZ_ALIAS_MAP: ClassVar[dict[str, str]] = {
        "US/Pacific": "America/Los_Angeles",
        "US/Mountain": "America/Denver",
        "US/Central": "America/Chicago",
        "US/Eastern": "America/New_York",
        "US/Alaska": "America/Anchorage",
        "US/Hawaii": "Pacific/Honolulu",
        "US/Arizona": "America/Phoenix",
        "GMT": "UTC",
        "Etc/UTC": "UTC",
        "Etc/GMT": "UTC",
        "Zulu": "UTC",
        "PST8PDT": "America/Los_Angeles",
        "MST7MDT": "America/Denver",
        "CST6CDT": "America/Chicago",
        "EST5EDT": "America/New_York",
    }

    OFFSET_TO_TZ_MAP: ClassVar[dict[int, str]] = {
        -8: "America/Los_Angeles",
        -7: "America/Los_Angeles",
        -6: "America/Chicago",
        -5: "America/New_York",
        -4: "America/New_York",
        0: "UTC",
    }

    def get_host_timezone(self) -> str:
        """Get the host's local timezone as an IANA timezone identifier.

        Falls back to DEFAULT_VIEWER_TIMEZONE when detection fails.
        """
        local_tz_name = time.tzname[time.daylight] if time.daylight else time.tzname[0]
        if local_tz_name in self.TZ_ABBREV_MAP:
            return self.TZ_ABBREV_MAP[local_tz_name]

        now_local = datetime.datetime.now()
        now_utc = datetime.datetime.now(datetime.UTC)
        offset_hours = round((now_local - now_utc.replace(tzinfo=None)).total_seconds() / 3600)
        if offset_hours in self.OFFSET_TO_TZ_MAP:
            return self.OFFSET_TO_TZ_MAP[offset_hours]

        logger.warning(
            "Could not detect host timezone, offset=%dh, falling back to %s",
            offset_hours,
            DEFAULT_VIEWER_TIMEZONE,
        )
        return DEFAULT_VIEWER_TIMEZONE


class TimeProvider:
    """Provides current time with test time override support."""

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden via the AVAILABILITY_TEST_TIME environment variable
        (ISO 8601, e.g. "2025-10-27T08:20:00-07:00"). Naive values are UTC.
        """
        test_time = os.environ.get(TEST_TIME_ENV)
        if test_time:
            from dateutil import parser as date_parser

            try:
                dt = date_parser.isoparse(test_time)
            except ValueError as e:
                logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)
            else:
                if dt.tzinfo is None:
                    return dt.replace(tzinfo=datetime.UTC)
                return dt.astimezone(datetime.UTC)

        return datetime.datetime.now(datetime.UTC)


_detector = TimezoneDetector()
_time_provider = TimeProvider()


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function)."""
    return _time_provider.now_utc()


def normalize_timezone_name(tz_str: str | None) -> str | None:
    """Normalize a timezone string to a canonical IANA identifier.

    Returns None when the name cannot be resolved.

    Examples:
        >>> normalize_timezone_name("US/Pacific")
        'America/Los_Angeles'
        >>> normalize_timezone_name("Invalid/Timezone") is None
        True
    """
    if not tz_str:
        return None

    resolved = _detector.TZ_ALIAS_MAP.get(tz_str, tz_str)
    try:
        zoneinfo.ZoneInfo(resolved)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown timezone name: %r", tz_str)
        return None
    return resolved


def get_default_timezone(fallback: str | None = None) -> str:
    """Resolve the viewer timezone name.

    Checks AVAILABILITY_TIMEZONE first, then host detection, then ``fallback``.
    """
    configured = normalize_timezone_name(os.environ.get("AVAILABILITY_TIMEZONE"))
    if configured:
        return configured
    if fallback:
        return normalize_timezone_name(fallback) or DEFAULT_VIEWER_TIMEZONE
    return _detector.get_host_timezone()


def get_zone(tz_name: str | None) -> zoneinfo.ZoneInfo:
    """Return a ZoneInfo for ``tz_name``, falling back to the default viewer zone."""
    name = normalize_timezone_name(tz_name)
    if name is None:
        if tz_name:
            logger.warning("Invalid timezone %r, using %s", tz_name, DEFAULT_VIEWER_TIMEZONE)
        name = DEFAULT_VIEWER_TIMEZONE
    return zoneinfo.ZoneInfo(name)


def localize(dt: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    """Express ``dt`` in ``tz``; naive values are floating local times in ``tz``."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)
