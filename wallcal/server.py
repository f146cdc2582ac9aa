"""aiohttp server exposing the merged calendar and custom-event editing."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date, datetime
from typing import Any
from urllib.parse import urlsplit

import httpx
from aiohttp import web
from pydantic import ValidationError

from .aggregator import CalendarAggregator
from .exceptions import EventNotFoundError
from .proxy_fetcher import DEFAULT_HEADERS
from .stores import JsonEventStore, JsonProjectStore, move_event_to_day

logger = logging.getLogger(__name__)

PROXY_RESPONSE_HEADERS = {
    "Content-Type": "text/calendar",
    "Access-Control-Allow-Origin": "*",
    "Cache-Control": "public, max-age=300",
}

_MONTH_PATTERN = re.compile(r"(\d{4})-(\d{2})")
# The padded window reaches one day past either end of the month
_MIN_YEAR, _MAX_YEAR = 2, 9998

AGGREGATOR_KEY = web.AppKey("aggregator", CalendarAggregator)
EVENT_STORE_KEY = web.AppKey("event_store", JsonEventStore)
HTTP_CLIENT_KEY = web.AppKey("http_client", httpx.AsyncClient)


def parse_month(value: str | None, today: date) -> tuple[int, int]:
    """Parse ``YYYY-MM``; None means the month containing ``today``.

    Raises:
        ValueError: If the value is malformed or the month is out of range.
    """
    if not value:
        return today.year, today.month
    match = _MONTH_PATTERN.fullmatch(value.strip())
    if match is None:
        raise ValueError(f"Invalid month {value!r}, expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month {value!r}, expected YYYY-MM")
    if not _MIN_YEAR <= year <= _MAX_YEAR:
        raise ValueError(f"Invalid month {value!r}, year must be {_MIN_YEAR}..{_MAX_YEAR}")
    return year, month


def _is_http_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


async def _read_json_object(request: web.Request) -> dict[str, Any]:
    try:
        data = await request.json()
    except ValueError as e:
        raise web.HTTPBadRequest(
            text='{"error": "invalid json"}', content_type="application/json"
        ) from e
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(
            text='{"error": "expected a JSON object"}', content_type="application/json"
        )
    return data


def _invalid_event_response(error: ValidationError) -> web.Response:
    details = error.errors(include_url=False, include_context=False)
    return web.json_response({"error": "invalid event", "details": details}, status=400)


def register_api_routes(app: web.Application) -> None:
    """Register the calendar, proxy and event routes on ``app``.

    Handlers resolve their collaborators from the app at request time so tests
    can swap them before startup.
    """

    async def health_check(_request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def calendar_proxy(request: web.Request) -> web.Response:
        """Same-origin passthrough for calendar feeds blocked by CORS."""
        ical_url = request.query.get("url")
        if not ical_url:
            return web.Response(text="Missing url parameter", status=400)
        if not _is_http_url(ical_url):
            return web.Response(text="Only http and https URLs can be proxied", status=400)

        client = request.app[HTTP_CLIENT_KEY]
        try:
            upstream = await client.get(ical_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Calendar proxy fetch failed for %s: %s", ical_url, e)
            return web.Response(text=f"Failed to fetch calendar: {e}", status=500)

        logger.debug(
            "Proxied %s (HTTP %d, %d bytes)", ical_url, upstream.status_code, len(upstream.text)
        )
        return web.Response(
            text=upstream.text,
            status=upstream.status_code,
            headers=PROXY_RESPONSE_HEADERS,
        )

    async def get_calendar(request: web.Request) -> web.Response:
        aggregator = request.app[AGGREGATOR_KEY]
        today = datetime.now(aggregator.tz).date()
        try:
            year, month = parse_month(request.query.get("month"), today)
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)

        if request.query.get("refresh", "").lower() in ("1", "true", "yes"):
            aggregator.invalidate_cache()
        calendar = await aggregator.build_month(year, month)
        return web.json_response(calendar.to_api())

    async def create_event(request: web.Request) -> web.Response:
        data = await _read_json_object(request)
        try:
            record = request.app[EVENT_STORE_KEY].create(data)
        except ValidationError as e:
            return _invalid_event_response(e)
        return web.json_response(record.model_dump(mode="json"), status=201)

    async def update_event(request: web.Request) -> web.Response:
        event_id = request.match_info["event_id"]
        data = await _read_json_object(request)
        try:
            record = request.app[EVENT_STORE_KEY].update(event_id, data)
        except EventNotFoundError as e:
            return web.json_response({"error": str(e)}, status=404)
        except ValidationError as e:
            return _invalid_event_response(e)
        return web.json_response(record.model_dump(mode="json"))

    async def move_event(request: web.Request) -> web.Response:
        event_id = request.match_info["event_id"]
        data = await _read_json_object(request)
        raw_day = data.get("date")
        try:
            new_day = date.fromisoformat(raw_day) if isinstance(raw_day, str) else None
        except ValueError:
            new_day = None
        if new_day is None:
            return web.json_response({"error": "missing or invalid date"}, status=400)

        try:
            record = move_event_to_day(
                request.app[EVENT_STORE_KEY], event_id, new_day, request.app[AGGREGATOR_KEY].tz
            )
        except EventNotFoundError as e:
            return web.json_response({"error": str(e)}, status=404)
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)
        return web.json_response(record.model_dump(mode="json"))

    async def delete_event(request: web.Request) -> web.Response:
        event_id = request.match_info["event_id"]
        try:
            request.app[EVENT_STORE_KEY].delete(event_id)
        except EventNotFoundError as e:
            return web.json_response({"error": str(e)}, status=404)
        return web.Response(status=204)

    app.router.add_get("/api/health", health_check)
    app.router.add_get("/api/calendar-proxy", calendar_proxy)
    app.router.add_get("/api/calendar", get_calendar)
    app.router.add_post("/api/events", create_event)
    app.router.add_patch("/api/events/{event_id}", update_event)
    app.router.add_post("/api/events/{event_id}/move", move_event)
    app.router.add_delete("/api/events/{event_id}", delete_event)


def create_app(
    config: Any,
    aggregator: CalendarAggregator | None = None,
    event_store: JsonEventStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> web.Application:
    """Build the aiohttp application.

    Args:
        config: Application configuration
        aggregator: Calendar aggregator; built from config and stores if None
        event_store: Custom event store; opened from ``config.events_path`` if None
        http_client: Client used by the calendar proxy route; created if None
    """
    if event_store is None:
        event_store = JsonEventStore(config.events_path)
    if aggregator is None:
        aggregator = CalendarAggregator(
            config, event_store=event_store, project_store=JsonProjectStore(config.projects_path)
        )
    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=float(getattr(config, "request_timeout", 30)),
            follow_redirects=True,
            headers=DEFAULT_HEADERS,
        )

    app = web.Application()
    app[AGGREGATOR_KEY] = aggregator
    app[EVENT_STORE_KEY] = event_store
    app[HTTP_CLIENT_KEY] = http_client
    register_api_routes(app)

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")
        await aggregator.aclose()
        if owns_client:
            await http_client.aclose()

    app.on_cleanup.append(_shutdown)
    return app


async def _serve(config: Any) -> None:
    app = create_app(config)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.server_bind, config.server_port)
    try:
        await site.start()
    except OSError:
        logger.exception("Could not bind %s:%d", config.server_bind, config.server_port)
        await runner.cleanup()
        raise
    logger.info("Server started on http://%s:%d", config.server_bind, config.server_port)

    try:
        await asyncio.Event().wait()
    finally:
        logger.info("Stopping server")
        await runner.cleanup()


def run_server(config: Any) -> None:
    """Run the HTTP server until interrupted."""
    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user, shutting down")
