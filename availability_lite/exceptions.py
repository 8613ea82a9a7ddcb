"""Exception hierarchy for availability_lite.

Each kind of failure gets its own type so callers can decide between
skipping a single record, surfacing an error to the viewer, or failing loudly
on misconfiguration.
"""


class AvailabilityError(Exception):
    """Base exception for all availability_lite errors."""


class RecurrenceExpansionError(AvailabilityError):
    """A recurring event could not be expanded into occurrences.

    Raised per event; the expander skips the event and keeps going.
    """

    def __init__(self, message: str, uid: str | None = None):
        super().__init__(message)
        self.uid = uid


class RecurrenceParseError(RecurrenceExpansionError):
    """The recurrence rule text could not be parsed."""


class UnknownTopicError(AvailabilityError, ValueError):
    """A topic filter was requested that has no registered predicate.

    This is a configuration error and should result in HTTP 400 Bad Request
    at the API boundary.
    """

    def __init__(self, topics: list[str], known: list[str]):
        super().__init__(
            f"Unknown topic(s) {sorted(topics)!r}; known topics are {sorted(known)!r}"
        )
        self.topics = topics
        self.known = known


class ICSFetchError(AvailabilityError):
    """Base exception for ICS fetch errors."""


class ICSNetworkError(ICSFetchError):
    """Network error during ICS fetch."""


class ICSTimeoutError(ICSFetchError):
    """Timeout error during ICS fetch."""


class ICSParseError(AvailabilityError):
    """ICS content could not be parsed into calendar components."""
