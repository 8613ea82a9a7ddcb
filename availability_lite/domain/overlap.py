"""Overlap detection between primary occurrences and plan-calendar busy blocks."""

from __future__ import annotations

import logging
from bisect import bisect_left
from collections.abc import Iterable
from datetime import datetime

from availability_lite.calendar.models import Occurrence, OverlapRecord

logger = logging.getLogger(__name__)


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval intersection; intervals that only touch do not overlap."""
    return start_a < end_b and start_b < end_a


def to_overlap_record(primary: Occurrence, plan: Occurrence) -> OverlapRecord:
    return OverlapRecord(
        id=plan.id,
        date=plan.date,
        blocks=[primary.summary],
        name=plan.summary,
        private=plan.transparency is None,
    )


def annotate(primary: Iterable[Occurrence], plan: Iterable[Occurrence]) -> list[Occurrence]:
    """Return copies of ``primary`` with ``overlaps`` set from colliding plan occurrences.

    Plan occurrences are sorted by start once; for each primary occurrence only
    the plan occurrences starting before its end are examined.
    """
    ordered = sorted(plan, key=lambda p: p.date)
    starts = [p.date for p in ordered]

    annotated = []
    for block in primary:
        upper = bisect_left(starts, block.end_date)
        overlaps = [
            to_overlap_record(block, p)
            for p in ordered[:upper]
            if intervals_overlap(block.date, block.end_date, p.date, p.end_date)
        ]
        annotated.append(block.model_copy(update={"overlaps": overlaps}))

    logger.debug(
        "Annotated %d primary occurrences against %d plan occurrences", len(annotated), len(ordered)
    )
    return annotated
