"""Availability processing pipeline for availability_lite.

The engine runs as an explicit, synchronous pipeline of stages over a shared
ProcessingContext. Callers re-run it whenever any input changes (source data,
active topics, current time); nothing is kept between runs.

Usage:
    result = compute_schedule(primary, plans, topics=["lunch"], tz=zone)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Optional, Protocol

from availability_lite.calendar.models import (
    DayDescriptor,
    FetchResult,
    Occurrence,
    RawEvent,
    ScheduleResult,
)
from availability_lite.core.timezone_utils import now_utc
from availability_lite.domain.expander import OccurrenceExpander, PlanOccurrenceExpander
from availability_lite.domain.overlap import annotate
from availability_lite.domain.topics import TopicFilter
from availability_lite.domain.window import build_days, build_window, enabled_days, select_day
from availability_lite.exceptions import RecurrenceExpansionError, UnknownTopicError

logger = logging.getLogger(__name__)


@dataclass
class ProcessingContext:
    """Context passed between pipeline stages."""

    tz: tzinfo
    now: datetime
    horizon_weeks: int = 3

    # Inputs
    primary: Optional[FetchResult] = None
    plans: list[Optional[FetchResult]] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    selected_day: Optional[datetime] = None

    # Processing state (modified by stages)
    ready: bool = False
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    primary_occurrences: list[Occurrence] = field(default_factory=list)
    plan_occurrences: list[Occurrence] = field(default_factory=list)
    occurrences: list[Occurrence] = field(default_factory=list)
    days: list[DayDescriptor] = field(default_factory=list)
    enabled_days: list[DayDescriptor] = field(default_factory=list)

    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProcessingResult:
    """Result from a pipeline stage or complete pipeline execution."""

    success: bool = True
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    events_in: int = 0
    events_out: int = 0
    stage_name: str = ""

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)
        logger.warning("[%s] %s", self.stage_name, message)

    def add_error(self, message: str) -> None:
        """Add an error message and mark as failed."""
        self.errors.append(message)
        self.success = False
        logger.error("[%s] %s", self.stage_name, message)


class ScheduleStage(Protocol):
    """One step of the availability pipeline."""

    @property
    def name(self) -> str: ...

    def process(self, context: ProcessingContext) -> ProcessingResult: ...


class ExpansionStage:
    """Expand the primary source and every plan source into occurrences.

    Produces nothing unless every source has resolved with data.
    """

    name = "Expansion"

    def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name)
        context.window_start, context.window_end = build_window(context.now, context.horizon_weeks)

        sources = [context.primary, *context.plans]
        context.ready = all(s is not None and s.is_ok for s in sources)
        result.metadata["ready"] = context.ready
        if not context.ready:
            logger.debug("Calendar sources not ready; skipping expansion")
            return result

        def report(event: RawEvent, error: RecurrenceExpansionError) -> None:
            result.add_warning(f"Skipped recurring event {event.uid}: {error}")

        window = (context.window_start, context.window_end)
        primary = context.primary.data  # type: ignore[union-attr]
        context.primary_occurrences = OccurrenceExpander(context.tz, on_failure=report).expand(
            primary, *window
        )

        plan_expander = PlanOccurrenceExpander(context.tz, on_failure=report)
        context.plan_occurrences = [
            occurrence
            for source in context.plans
            for occurrence in plan_expander.expand(source.data, *window)  # type: ignore[union-attr]
        ]

        result.events_in = len(primary) + sum(len(s.data) for s in context.plans)  # type: ignore[union-attr, arg-type]
        result.events_out = len(context.primary_occurrences)
        return result


class OverlapStage:
    """Attach plan collisions to every primary occurrence."""

    name = "Overlap"

    def process(self, context: ProcessingContext) -> ProcessingResult:
        context.occurrences = annotate(context.primary_occurrences, context.plan_occurrences)
        return ProcessingResult(
            stage_name=self.name,
            events_in=len(context.primary_occurrences),
            events_out=len(context.occurrences),
        )


class TopicFilterStage:
    """Keep occurrences matching the active topics."""

    name = "TopicFilter"

    def __init__(self, topic_filter: TopicFilter):
        self.topic_filter = topic_filter

    def process(self, context: ProcessingContext) -> ProcessingResult:
        events_in = len(context.occurrences)
        context.occurrences = self.topic_filter.filter(context.occurrences, context.topics)
        return ProcessingResult(stage_name=self.name, events_in=events_in, events_out=len(context.occurrences))


class AvailabilityStage:
    """Build the day list, the enabled subset and the selected day."""

    name = "Availability"

    def process(self, context: ProcessingContext) -> ProcessingResult:
        context.days = build_days(context.now, context.tz, context.horizon_weeks)
        context.enabled_days = enabled_days(context.days, context.occurrences)
        context.selected_day = select_day(context.selected_day, context.enabled_days)
        return ProcessingResult(
            stage_name=self.name,
            metadata={"enabled_days": len(context.enabled_days)},
        )


class AvailabilityPipeline:
    """Runs the stages in order, stopping at the first failed stage."""

    def __init__(self, stages: Optional[Sequence[ScheduleStage]] = None):
        self.stages: list[ScheduleStage] = list(stages or [])

    @classmethod
    def default(cls, topic_filter: Optional[TopicFilter] = None) -> AvailabilityPipeline:
        return cls(
            [
                ExpansionStage(),
                OverlapStage(),
                TopicFilterStage(topic_filter or TopicFilter()),
                AvailabilityStage(),
            ]
        )

    def add_stage(self, stage: ScheduleStage) -> AvailabilityPipeline:
        """Add a processing stage to the pipeline (builder pattern)."""
        self.stages.append(stage)
        return self

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Execute all stages in sequence.

        Raises:
            UnknownTopicError: Misconfigured topic filters are never swallowed
        """
        aggregated = ProcessingResult(stage_name="Pipeline")

        for i, stage in enumerate(self.stages, start=1):
            logger.debug("Executing stage %d/%d: %s", i, len(self.stages), stage.name)
            try:
                stage_result = stage.process(context)
            except UnknownTopicError:
                raise
            except Exception as e:
                aggregated.add_error(f"Stage {stage.name} raised exception: {e}")
                logger.exception("Stage %s failed with exception", stage.name)
                return aggregated

            aggregated.warnings.extend(stage_result.warnings)
            aggregated.errors.extend(stage_result.errors)
            aggregated.metadata.update(stage_result.metadata)
            if not stage_result.success:
                aggregated.success = False
                logger.error("Pipeline stopped at stage %d (%s) due to failure", i, stage.name)
                return aggregated

        aggregated.events_out = len(context.occurrences)
        logger.debug(
            "Pipeline completed: %d occurrences, %d warnings", aggregated.events_out, len(aggregated.warnings)
        )
        return aggregated

    def __repr__(self) -> str:
        return f"AvailabilityPipeline(stages={[s.name for s in self.stages]})"


def compute_schedule(
    primary: Optional[FetchResult],
    plans: Sequence[Optional[FetchResult]],
    topics: Sequence[str] = (),
    *,
    tz: tzinfo,
    now: Optional[datetime] = None,
    horizon_weeks: int = 3,
    selected_day: Optional[datetime] = None,
    topic_filter: Optional[TopicFilter] = None,
) -> ScheduleResult:
    """Run the full availability pipeline and package the result for display.

    Occurrences are sorted ascending by start. When any source has not
    resolved with data the result is not ready and has no occurrences, but the
    day list is still built.
    """
    context = ProcessingContext(
        tz=tz,
        now=now or now_utc(),
        horizon_weeks=horizon_weeks,
        primary=primary,
        plans=list(plans),
        topics=list(topics),
        selected_day=selected_day,
    )
    outcome = AvailabilityPipeline.default(topic_filter).process(context)

    return ScheduleResult(
        ready=context.ready and outcome.success,
        error=primary.error if primary is not None else None,
        occurrences=sorted(context.occurrences, key=lambda o: o.date),
        days=context.days,
        enabled_days=context.enabled_days,
        selected_day=context.selected_day,
        warnings=outcome.warnings + outcome.errors,
    )
