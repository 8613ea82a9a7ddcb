"""Main API routes for availability_lite."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any, Callable

from availability_lite.core.lite_logging import get_logging_status
from availability_lite.domain.pipeline import compute_schedule
from availability_lite.domain.topics import TopicFilter
from availability_lite.exceptions import UnknownTopicError

logger = logging.getLogger(__name__)


def _requested_topics(query: Any) -> list[str]:
    """Topics from repeated ``topic`` params, each optionally comma-separated."""
    topics: list[str] = []
    for value in query.getall("topic", []):
        topics.extend(t.strip() for t in value.split(",") if t.strip())
    return topics


def register_api_routes(
    app: Any,
    config: Any,
    state_ref: list[Any],
    state_lock: Any,
    tz: Any,
    time_provider: Callable[[], datetime],
    topic_filter: TopicFilter,
) -> None:
    """Register main API routes.

    Args:
        app: aiohttp web application
        config: Application configuration
        state_ref: Single-element list holding the current CalendarState
        state_lock: Lock guarding ``state_ref``
        tz: Viewer timezone
        time_provider: Returns the current UTC time
        topic_filter: Registry-backed topic filter
    """
    from aiohttp import web

    async def schedule(request: Any) -> Any:
        """Availability for the display horizon, optionally filtered by topic."""
        topics = _requested_topics(request.query)

        selected_day = None
        day_param = request.query.get("day")
        if day_param:
            try:
                selected_day = datetime.combine(date.fromisoformat(day_param), time(0), tzinfo=tz)
            except ValueError:
                return web.json_response({"error": f"invalid day: {day_param!r}"}, status=400)

        async with state_lock:
            state = state_ref[0]

        try:
            result = compute_schedule(
                state.primary,
                state.plans,
                topics,
                tz=tz,
                now=time_provider(),
                horizon_weeks=config.horizon_weeks,
                selected_day=selected_day,
                topic_filter=topic_filter,
            )
        except UnknownTopicError as e:
            logger.warning("Rejected schedule request: %s", e)
            return web.json_response({"error": str(e), "known_topics": e.known}, status=400)

        payload = result.model_dump(mode="json")
        payload["name"] = config.name
        return web.json_response(payload)

    async def topics(_request: Any) -> Any:
        """List the registered topic names."""
        return web.json_response({"topics": topic_filter.topics})

    async def health_check(_request: Any) -> Any:
        """Health check reporting whether every source has loaded."""
        async with state_lock:
            state = state_ref[0]

        errors = state.errors
        status = "ok" if state.is_ready else "degraded"
        health = {
            "status": status,
            "server_time_iso": time_provider().isoformat(),
            "last_refresh_iso": state.refreshed_at.isoformat() if state.refreshed_at else None,
            "plan_sources": len(state.plans),
            "errors": errors,
            "logging": get_logging_status(),
        }
        return web.json_response(health, status=200 if status == "ok" else 503)

    app.router.add_get("/api/schedule", schedule)
    app.router.add_get("/api/topics", topics)
    app.router.add_get("/api/health", health_check)

    logger.debug("API routes registered")
