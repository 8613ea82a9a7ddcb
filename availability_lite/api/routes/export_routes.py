"""Event download route: turns query parameters into a one-event ICS file."""

from __future__ import annotations

import logging
from typing import Any

from availability_lite.calendar.ics_export import EXPORT_FILENAME, build_event_ics, parse_export_time

logger = logging.getLogger(__name__)

REQUIRED_PARAMS = ("title", "start", "end")


def register_export_routes(app: Any) -> None:
    """Register the ICS download route.

    Args:
        app: aiohttp web application
    """
    from aiohttp import web

    async def download_event(request: Any) -> Any:
        """Serve ``event.ics`` built from title/location/start/end query params."""
        query = request.query
        missing = [p for p in REQUIRED_PARAMS if not query.get(p)]
        if missing:
            return web.json_response({"error": f"missing parameters: {', '.join(missing)}"}, status=400)

        try:
            start = parse_export_time(query["start"])
            end = parse_export_time(query["end"])
            body = build_event_ics(query["title"], start, end, location=query.get("location"))
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)

        return web.Response(
            body=body,
            content_type="text/calendar",
            headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
        )

    app.router.add_get("/event.ics", download_event)

    logger.debug("Export routes registered")
