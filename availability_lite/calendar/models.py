"""Data models for calendar sources, occurrences and display days."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

SCHEDULABLE_KIND = "VEVENT"


class RecurrenceOverride(BaseModel):
    """An explicit override replacing one generated occurrence's start/end."""

    start: datetime = Field(..., description="Overridden occurrence start")
    end: Optional[datetime] = Field(default=None, description="Overridden occurrence end")
    summary: Optional[str] = Field(default=None, description="Overridden title, if any")


class RawEvent(BaseModel):
    """A calendar record as read from a calendar source.

    Naive ``start``/``end`` values are floating times, interpreted in the
    viewer's zone. ``transparency`` is only checked for presence: any value
    marks the event as free/public.
    """

    uid: str = Field(..., description="Unique identifier (ICS UID)")
    summary: Optional[str] = Field(default=None, description="Event title")
    start: Optional[datetime] = Field(default=None, description="Event start")
    end: Optional[datetime] = Field(default=None, description="Event end")

    # Recurrence
    rrule: Optional[str] = Field(default=None, description="RFC 5545 recurrence rule text")
    recurrences: dict[str, RecurrenceOverride] = Field(
        default_factory=dict, description="Recurrence exceptions keyed by RECURRENCE-ID"
    )
    exdates: list[datetime] = Field(default_factory=list, description="Excluded instants")

    transparency: Optional[str] = Field(default=None, description="TRANSP marker")
    kind: str = Field(default=SCHEDULABLE_KIND, description="Component type (VEVENT, VTODO, ...)")

    @model_validator(mode="after")
    def _check_interval(self) -> "RawEvent":
        if self.start is not None and self.end is not None:
            start, end = self.start, self.end
            # Floating and zoned values cannot be compared directly
            if (start.tzinfo is None) == (end.tzinfo is None) and end <= start:
                raise ValueError(f"Event {self.uid!r} ends at or before its start")
        return self

    @property
    def is_schedulable(self) -> bool:
        """Only VEVENT records with a start are expanded."""
        return self.kind == SCHEDULABLE_KIND and self.start is not None

    @property
    def is_recurring(self) -> bool:
        return bool(self.rrule)


class OverlapRecord(BaseModel):
    """A plan occurrence colliding with a primary occurrence."""

    id: str
    date: datetime
    blocks: list[Optional[str]] = Field(default_factory=list, description="Primary summaries checked")
    name: Optional[str] = Field(default=None, description="Plan event summary")
    private: bool = Field(..., description="True when the plan event has no transparency")

    model_config = ConfigDict(frozen=True)

    @field_serializer("date")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to ISO format."""
        return dt.isoformat()


class Occurrence(BaseModel):
    """One concrete, dated instance of a calendar event."""

    id: str = Field(..., description="source_id, or source_id + ISO date for generated instances")
    source_id: str
    summary: Optional[str] = None
    transparency: Optional[str] = None
    date: datetime = Field(..., description="Occurrence start in the viewer's zone")
    end_date: datetime = Field(..., description="Occurrence end in the viewer's zone")
    overlaps: list[OverlapRecord] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_interval(self) -> "Occurrence":
        if self.end_date <= self.date:
            raise ValueError(f"Occurrence {self.id!r} ends at or before its start")
        return self

    @property
    def is_private(self) -> bool:
        return self.transparency is None

    @field_serializer("date", "end_date")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()


class DayDescriptor(BaseModel):
    """One calendar day in the display horizon."""

    date: datetime = Field(..., description="Local midnight")
    label: str

    model_config = ConfigDict(frozen=True)

    @field_serializer("date")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class FetchResult(BaseModel):
    """Per-source result from the fetch collaborator: either data or an error."""

    data: Optional[dict[str, RawEvent]] = None
    error: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.data is not None


class ScheduleResult(BaseModel):
    """Everything the presentation layer needs for one render."""

    ready: bool = False
    error: Optional[str] = None
    occurrences: list[Occurrence] = Field(default_factory=list)
    days: list[DayDescriptor] = Field(default_factory=list)
    enabled_days: list[DayDescriptor] = Field(default_factory=list)
    selected_day: Optional[datetime] = None
    warnings: list[str] = Field(default_factory=list)

    @field_serializer("selected_day", when_used="unless-none")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()
