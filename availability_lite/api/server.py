"""availability_lite server: periodic ICS refresh behind a small aiohttp API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Optional

from availability_lite.calendar.fetcher import ICSFetcher, fetch_sources
from availability_lite.calendar.models import FetchResult
from availability_lite.core.config_manager import AvailabilityConfig
from availability_lite.core.timezone_utils import get_zone, now_utc
from availability_lite.domain.pipeline import compute_schedule
from availability_lite.domain.topics import TopicFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarState:
    """Latest fetch results; replaced as a whole after every refresh."""

    primary: Optional[FetchResult] = None
    plans: tuple[Optional[FetchResult], ...] = ()
    refreshed_at: Optional[datetime] = None

    @property
    def is_ready(self) -> bool:
        sources = [self.primary, *self.plans]
        return all(s is not None and s.is_ok for s in sources)

    @property
    def errors(self) -> list[str]:
        return [s.error for s in (self.primary, *self.plans) if s is not None and s.error]


def initial_state(config: AvailabilityConfig) -> CalendarState:
    """State before the first refresh: every source unresolved."""
    return CalendarState(plans=tuple(None for _ in config.plan_urls))


async def _refresh_once(
    config: AvailabilityConfig,
    fetcher: ICSFetcher,
    state_ref: list[CalendarState],
    state_lock: asyncio.Lock,
    tz: tzinfo,
) -> None:
    """Fetch every source and atomically replace the shared state."""
    logger.debug("Refreshing %d calendar sources", 1 + len(config.plan_urls))
    primary, plans = await fetch_sources(fetcher, config.calendar_url, config.plan_urls, tz)
    state = CalendarState(primary=primary, plans=tuple(plans), refreshed_at=now_utc())

    async with state_lock:
        state_ref[0] = state

    if state.errors:
        logger.warning("Refresh completed with errors: %s", "; ".join(state.errors))
    else:
        logger.info("Refresh completed (%d plan sources)", len(plans))


async def _refresh_loop(
    config: AvailabilityConfig,
    fetcher: ICSFetcher,
    state_ref: list[CalendarState],
    state_lock: asyncio.Lock,
    tz: tzinfo,
    stop_event: asyncio.Event,
) -> None:
    """Background refresher: immediate refresh then periodic refreshes."""
    interval = config.refresh_interval_seconds
    while not stop_event.is_set():
        try:
            await _refresh_once(config, fetcher, state_ref, state_lock, tz)
        except Exception:
            logger.exception("Refresh loop unexpected error")

        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=interval)


def make_app(
    config: AvailabilityConfig,
    state_ref: list[CalendarState],
    state_lock: asyncio.Lock,
    tz: Optional[tzinfo] = None,
    topic_filter: Optional[TopicFilter] = None,
) -> Any:
    """Create aiohttp web application with routes wired to the shared state."""
    from aiohttp import web

    from availability_lite.api.routes import register_api_routes, register_export_routes

    app = web.Application()
    register_api_routes(
        app=app,
        config=config,
        state_ref=state_ref,
        state_lock=state_lock,
        tz=tz or get_zone(config.timezone),
        time_provider=now_utc,
        topic_filter=topic_filter or TopicFilter(),
    )
    register_export_routes(app)

    async def _shutdown(_app: Any) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _serve(config: AvailabilityConfig, external_stop_event: asyncio.Event | None = None) -> None:
    """Run the server and the refresher until signalled to stop.

    Args:
        config: Validated configuration
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are not registered (caller owns signal handling).
    """
    from aiohttp import web

    tz = get_zone(config.timezone)
    state_ref = [initial_state(config)]
    state_lock = asyncio.Lock()
    stop_event = external_stop_event or asyncio.Event()

    app = make_app(config, state_ref, state_lock, tz)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=config.server_bind, port=config.server_port)
    await site.start()
    logger.info("Server started on %s:%d (timezone %s)", config.server_bind, config.server_port, config.timezone)

    loop = asyncio.get_running_loop()
    if external_stop_event is None:

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    async with ICSFetcher(config) as fetcher:
        refresher = asyncio.create_task(_refresh_loop(config, fetcher, state_ref, state_lock, tz, stop_event))
        await stop_event.wait()
        logger.info("Stop event received, shutting down")

        refresher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await refresher

    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: AvailabilityConfig) -> None:
    """Start the asyncio event loop and HTTP server.

    Blocks until SIGINT/SIGTERM is received.
    """
    from availability_lite.core.lite_logging import configure_lite_logging

    configure_lite_logging(debug_mode=config.debug_logging)

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


async def _fetch_state(config: AvailabilityConfig, tz: tzinfo) -> CalendarState:
    async with ICSFetcher(config) as fetcher:
        primary, plans = await fetch_sources(fetcher, config.calendar_url, config.plan_urls, tz)
    return CalendarState(primary=primary, plans=tuple(plans), refreshed_at=now_utc())


def format_schedule(result: Any, name: str, tz: tzinfo) -> str:
    """Plain-text rendering of a ScheduleResult grouped by day."""
    lines = [f"Availability for {name}"]
    if result.error:
        lines.append(f"Error: {result.error}")
    if not result.ready:
        lines.append("Calendars not ready")
        return "\n".join(lines)

    for day in result.enabled_days:
        lines.append(f"{day.label} {day.date:%Y-%m-%d}")
        for occurrence in result.occurrences:
            start = occurrence.date.astimezone(tz)
            if start.date() != day.date.date():
                continue
            end = occurrence.end_date.astimezone(tz)
            lines.append(f"  {start:%H:%M}-{end:%H:%M} {occurrence.summary or '(busy)'}")
            for overlap in occurrence.overlaps:
                label = overlap.name if not overlap.private else "private"
                lines.append(f"    conflicts with {label}")
    return "\n".join(lines)


def print_schedule(config: AvailabilityConfig, topics: Optional[list[str]] = None) -> None:
    """Fetch every source once and print the schedule.

    Raises:
        UnknownTopicError: If a requested topic is not registered
    """
    from availability_lite.core.lite_logging import configure_lite_logging

    configure_lite_logging(debug_mode=config.debug_logging)

    tz = get_zone(config.timezone)
    state = asyncio.run(_fetch_state(config, tz))
    result = compute_schedule(
        state.primary,
        state.plans,
        topics or [],
        tz=tz,
        horizon_weeks=config.horizon_weeks,
    )
    print(format_schedule(result, config.name, tz))
