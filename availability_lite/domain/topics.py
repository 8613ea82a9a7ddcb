"""Topic filtering of occurrences.

A topic is a named predicate over an Occurrence. The registry is an explicit
mapping passed to ``TopicFilter`` so tests and deployments can substitute
their own.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Callable

from availability_lite.calendar.models import Occurrence
from availability_lite.exceptions import UnknownTopicError

logger = logging.getLogger(__name__)

TopicPredicate = Callable[[Occurrence], bool]

WORK_DAY_END_HOUR = 17


def flexible_day_period(dt: datetime) -> str:
    """Wide English flexible day period for the local time of ``dt``.

    Evening from 17:00, afternoon from 12:00, morning from 04:00, otherwise night.
    """
    hour = dt.hour
    if hour >= 17:
        return "in the evening"
    if hour >= 12:
        return "in the afternoon"
    if hour >= 4:
        return "in the morning"
    return "at night"


def _summary_contains(text: str) -> TopicPredicate:
    def predicate(occurrence: Occurrence) -> bool:
        return text in (occurrence.summary or "")

    predicate.__name__ = f"summary_contains_{text.lower()}"
    return predicate


def _is_work(occurrence: Occurrence) -> bool:
    return "Work" in (occurrence.summary or "") and occurrence.date.hour < WORK_DAY_END_HOUR


def _is_afternoon(occurrence: Occurrence) -> bool:
    return flexible_day_period(occurrence.date).endswith("afternoon")


def _is_evening(occurrence: Occurrence) -> bool:
    return flexible_day_period(occurrence.date).endswith("evening")


DEFAULT_TOPICS: Mapping[str, TopicPredicate] = MappingProxyType(
    {
        "lunch": _summary_contains("Lunch"),
        "dinner": _summary_contains("Dinner"),
        "work": _is_work,
        "afternoon": _is_afternoon,
        "evening": _is_evening,
    }
)


class TopicFilter:
    """Selects occurrences matching at least one active topic."""

    def __init__(self, registry: Mapping[str, TopicPredicate] = DEFAULT_TOPICS):
        self.registry = registry

    @property
    def topics(self) -> list[str]:
        return list(self.registry)

    def validate(self, active_topics: Iterable[str]) -> list[str]:
        """Return ``active_topics`` as a list.

        Raises:
            UnknownTopicError: If any topic has no registered predicate
        """
        active = list(active_topics)
        unknown = [t for t in active if t not in self.registry]
        if unknown:
            raise UnknownTopicError(unknown, self.topics)
        return active

    def filter(self, occurrences: Iterable[Occurrence], active_topics: Iterable[str]) -> list[Occurrence]:
        """Keep occurrences matching any active topic; no active topics keeps everything."""
        active = self.validate(active_topics)
        if not active:
            return list(occurrences)

        predicates = [self.registry[t] for t in active]
        selected = [o for o in occurrences if any(p(o) for p in predicates)]
        logger.debug("Topic filter %s kept %d occurrences", active, len(selected))
        return selected
