"""Unit tests for availability_lite.calendar.ics_parser."""

from datetime import UTC, datetime, timedelta

import pytest

from availability_lite.calendar.ics_parser import ICSParser, parse_ics
from availability_lite.domain.expander import expand, expand_plan
from availability_lite.exceptions import ICSParseError

pytestmark = pytest.mark.unit


def wrap(*components: str) -> str:
    body = "\n".join(components)
    return f"BEGIN:VCALENDAR\nVERSION:2.0\nPRODID:-//availability_lite test//EN\n{body}\nEND:VCALENDAR\n"


def test_parse_when_simple_event_then_raw_event_keyed_by_uid(sample_ics_simple, utc_zone) -> None:
    events = parse_ics(sample_ics_simple, utc_zone)

    event = events["lunch-001@availability.test"]
    assert event.summary == "Team Lunch"
    assert event.start == datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
    assert event.end == datetime(2024, 1, 15, 13, 0, tzinfo=UTC)
    assert event.kind == "VEVENT"
    assert event.transparency is None
    assert event.rrule is None


def test_parse_when_recurring_then_rule_exdate_and_override_captured(sample_ics_recurring, utc_zone) -> None:
    events = parse_ics(sample_ics_recurring, utc_zone)

    assert list(events) == ["review-001@availability.test"]
    review = events["review-001@availability.test"]
    assert "FREQ=WEEKLY" in review.rrule
    assert "COUNT=4" in review.rrule
    assert review.exdates == [datetime(2024, 1, 22, 14, 0, tzinfo=UTC)]
    assert review.transparency == "OPAQUE"

    [override] = review.recurrences.values()
    assert override.start == datetime(2024, 1, 30, 16, 0, tzinfo=UTC)
    assert override.end == datetime(2024, 1, 30, 17, 0, tzinfo=UTC)
    assert override.summary == "Weekly Review (moved)"


def test_parsed_recurring_event_expands_as_primary_and_plan(sample_ics_recurring, utc_zone) -> None:
    events = parse_ics(sample_ics_recurring, utc_zone)
    window = (datetime(2024, 1, 14, tzinfo=UTC), datetime(2024, 2, 14, tzinfo=UTC))

    primary = expand(events, *window, utc_zone)
    plan = expand_plan(events, *window, utc_zone)

    assert [o.date.day for o in primary] == [15, 29, 5]
    assert sorted(o.date.day for o in plan) == [5, 15, 29, 30]


def test_parse_when_transparent_then_marker_kept(utc_zone) -> None:
    ics = wrap(
        "BEGIN:VEVENT",
        "UID:free-1",
        "DTSTART:20240115T120000Z",
        "DTEND:20240115T130000Z",
        "SUMMARY:Podcast",
        "TRANSP:TRANSPARENT",
        "END:VEVENT",
    )

    assert parse_ics(ics, utc_zone)["free-1"].transparency == "TRANSPARENT"


def test_parse_when_all_day_then_floating_midnight_and_one_day_end(utc_zone) -> None:
    ics = wrap(
        "BEGIN:VEVENT",
        "UID:holiday-1",
        "DTSTART;VALUE=DATE:20240115",
        "SUMMARY:HOLIDAY",
        "END:VEVENT",
    )

    event = parse_ics(ics, utc_zone)["holiday-1"]

    assert event.start == datetime(2024, 1, 15)
    assert event.end == datetime(2024, 1, 16)
    assert event.start.tzinfo is None


def test_parse_when_duration_instead_of_dtend_then_end_derived(utc_zone) -> None:
    ics = wrap(
        "BEGIN:VEVENT",
        "UID:call-1",
        "DTSTART:20240115T120000Z",
        "DURATION:PT30M",
        "SUMMARY:Call",
        "END:VEVENT",
    )

    event = parse_ics(ics, utc_zone)["call-1"]

    assert event.end - event.start == timedelta(minutes=30)


def test_parse_when_no_end_then_left_unset(utc_zone) -> None:
    ics = wrap("BEGIN:VEVENT", "UID:ping-1", "DTSTART:20240115T120000Z", "SUMMARY:Ping", "END:VEVENT")

    assert parse_ics(ics, utc_zone)["ping-1"].end is None


def test_parse_when_todo_then_kind_recorded(utc_zone) -> None:
    ics = wrap("BEGIN:VTODO", "UID:todo-1", "DTSTART:20240115T120000Z", "SUMMARY:File taxes", "END:VTODO")

    todo = parse_ics(ics, utc_zone)["todo-1"]

    assert todo.kind == "VTODO"
    assert not todo.is_schedulable


def test_parse_when_tzid_with_utc_until_then_rule_stays_expandable(la_zone) -> None:
    ics = wrap(
        "BEGIN:VEVENT",
        "UID:gym-1",
        "DTSTART;TZID=America/Los_Angeles:20240115T100000",
        "DTEND;TZID=America/Los_Angeles:20240115T110000",
        "RRULE:FREQ=DAILY;UNTIL=20240117T235959Z",
        "SUMMARY:Gym",
        "END:VEVENT",
    )

    events = parse_ics(ics, la_zone)
    window_start = datetime(2024, 1, 14, tzinfo=la_zone)
    occurrences = expand(events, window_start, window_start + timedelta(days=7), la_zone)

    assert "UNTIL=20240117T235959Z" in events["gym-1"].rrule
    assert [(o.date.day, o.date.hour) for o in occurrences] == [(15, 10), (16, 10), (17, 10)]


def test_parse_when_floating_start_with_utc_until_then_local_times_kept(la_zone) -> None:
    ics = wrap(
        "BEGIN:VEVENT",
        "UID:walk-1",
        "DTSTART:20240115T100000",
        "DTEND:20240115T110000",
        "RRULE:FREQ=DAILY;UNTIL=20240117T235959Z",
        "SUMMARY:Walk",
        "END:VEVENT",
    )

    events = parse_ics(ics, la_zone)
    window_start = datetime(2024, 1, 14, tzinfo=la_zone)
    occurrences = expand(events, window_start, window_start + timedelta(days=7), la_zone)

    assert events["walk-1"].start.tzinfo is None
    assert "UNTIL=20240117T235959Z" in events["walk-1"].rrule
    assert [(o.date.day, o.date.hour) for o in occurrences] == [(15, 10), (16, 10), (17, 10)]


def test_parse_when_local_until_then_read_in_dtstart_zone(utc_zone) -> None:
    ics = wrap(
        "BEGIN:VEVENT",
        "UID:gym-2",
        "DTSTART;TZID=America/Los_Angeles:20240115T100000",
        "DTEND;TZID=America/Los_Angeles:20240115T110000",
        "RRULE:FREQ=DAILY;UNTIL=20240117T100000",
        "SUMMARY:Gym",
        "END:VEVENT",
    )

    event = parse_ics(ics, utc_zone)["gym-2"]

    assert "UNTIL=20240117T180000Z" in event.rrule


def test_parse_when_all_day_rule_with_date_until_then_end_of_local_day(la_zone) -> None:
    ics = wrap(
        "BEGIN:VEVENT",
        "UID:trip-1",
        "DTSTART;VALUE=DATE:20240115",
        "DTEND;VALUE=DATE:20240116",
        "RRULE:FREQ=DAILY;UNTIL=20240117",
        "SUMMARY:TRIP",
        "END:VEVENT",
    )

    events = parse_ics(ics, la_zone)
    window_start = datetime(2024, 1, 14, 12, tzinfo=la_zone)
    occurrences = expand(events, window_start, window_start + timedelta(days=7), la_zone)

    assert "UNTIL=20240118T075959Z" in events["trip-1"].rrule
    assert [(o.date.day, o.date.hour) for o in occurrences] == [(15, 0), (16, 0), (17, 0)]


def test_parse_when_event_ends_before_start_then_skipped(utc_zone) -> None:
    ics = wrap(
        "BEGIN:VEVENT",
        "UID:bad-1",
        "DTSTART:20240115T130000Z",
        "DTEND:20240115T120000Z",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:good-1",
        "DTSTART:20240115T130000Z",
        "DTEND:20240115T140000Z",
        "END:VEVENT",
    )

    assert list(parse_ics(ics, utc_zone)) == ["good-1"]


def test_parse_when_override_without_master_then_skipped(utc_zone) -> None:
    ics = wrap(
        "BEGIN:VEVENT",
        "UID:orphan-1",
        "RECURRENCE-ID:20240115T120000Z",
        "DTSTART:20240115T150000Z",
        "DTEND:20240115T160000Z",
        "END:VEVENT",
    )

    assert parse_ics(ics, utc_zone) == {}


@pytest.mark.parametrize("content", ["", "   \n"])
def test_parse_when_empty_then_raises(content: str, utc_zone) -> None:
    with pytest.raises(ICSParseError):
        ICSParser(utc_zone).parse(content)


def test_parse_when_not_icalendar_then_raises(utc_zone) -> None:
    with pytest.raises(ICSParseError):
        ICSParser(utc_zone).parse("this is not a calendar")
