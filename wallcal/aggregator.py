"""Calendar aggregation orchestrator.

Ties the pipeline together for one displayed month:

    ProxyFetcher -> ICalParser -> RecurrenceExpander -> CalendarMerger

plus optional Google / Outlook sources and the two local stores. Remote feed
text is cached per URL; store changes trigger a cheap re-merge against the
cached remote portion instead of a refetch.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Sequence
from datetime import tzinfo
from typing import Any, Optional, Protocol

import httpx

from .datetime_utils import resolve_timezone
from .exceptions import RemoteSourceAuthError, RemoteSourceError
from .ical_parser import ICalParser
from .merger import CalendarMerger
from .models import DateWindow, MergedCalendar, ParsedEvent
from .proxy_fetcher import DEFAULT_HEADERS, ProxyFetcher
from .recurrence import RecurrenceExpander
from .remote_sources import GoogleCalendarSource, OutlookCalendarSource
from .stores import ProjectStore, StoredEventStore

logger = logging.getLogger(__name__)

CalendarListener = Callable[[MergedCalendar], None]


class EventSource(Protocol):
    """Anything that can list remote events for a window (Google, Outlook)."""

    name: str

    async def fetch_events(self, window: DateWindow) -> list[ParsedEvent]: ...


class CalendarAggregator:
    """Build merged month calendars from every configured source.

    Remote refreshes are numbered. A refresh that completes after a newer one
    has started still answers its own caller, but never replaces the
    aggregator's current calendar or cached remote events.
    """

    def __init__(
        self,
        config: Any,
        event_store: Optional[StoredEventStore] = None,
        project_store: Optional[ProjectStore] = None,
        fetcher: Optional[ProxyFetcher] = None,
        sources: Optional[Sequence[EventSource]] = None,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize aggregator.

        Args:
            config: Config (or any object with the same attributes)
            event_store: Custom event store; None means no custom events
            project_store: Project store; None means no project markers
            fetcher: Proxy fetcher for the iCal feed, created from config if None
            sources: Provider sources; built from configured tokens if None
            tz: Display timezone, resolved from ``config.timezone`` if None
            clock: Monotonic clock used for the feed cache
        """
        self.config = config
        self.tz = tz or resolve_timezone(getattr(config, "timezone", None))
        self.event_store = event_store
        self.project_store = project_store

        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or ProxyFetcher(config)
        self._client: Optional[httpx.AsyncClient] = None
        self.sources: list[EventSource] = (
            list(sources) if sources is not None else self._sources_from_config()
        )

        self.parser = ICalParser(self.tz)
        self.expander = RecurrenceExpander(self.tz)
        self.merger = CalendarMerger(self.tz)

        self._clock = clock
        self._feed_cache: dict[str, tuple[float, str]] = {}
        self._generation = 0
        self._remote_events: list[ParsedEvent] = []
        self._window: Optional[DateWindow] = None
        self._calendar: Optional[MergedCalendar] = None
        self._listeners: list[CalendarListener] = []

        self._store_unsubscribers = []
        for store in (event_store, project_store):
            if store is not None:
                self._store_unsubscribers.append(store.subscribe(self._on_store_change))

        logger.debug(
            "Calendar aggregator initialized (feed=%s, providers=%d, tz=%s)",
            bool(getattr(config, "ical_url", None)),
            len(self.sources),
            self.tz,
        )

    def _sources_from_config(self) -> list[EventSource]:
        sources: list[EventSource] = []
        google_token = getattr(self.config, "google_access_token", None)
        outlook_token = getattr(self.config, "outlook_access_token", None)
        if not google_token and not outlook_token:
            return sources

        timeout = float(getattr(self.config, "request_timeout", 30))
        self._client = httpx.AsyncClient(timeout=timeout, headers=DEFAULT_HEADERS)
        if google_token:
            sources.append(GoogleCalendarSource(google_token, self._client, self.tz))
        if outlook_token:
            sources.append(OutlookCalendarSource(outlook_token, self._client, self.tz))
        return sources

    @property
    def cache_ttl(self) -> float:
        return float(getattr(self.config, "cache_ttl_seconds", 300))

    @property
    def current_calendar(self) -> Optional[MergedCalendar]:
        """Most recently committed calendar, or None before the first build."""
        return self._calendar

    def subscribe(self, listener: CalendarListener) -> Callable[[], None]:
        """Call ``listener`` with every newly committed calendar."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    async def build_month(self, year: int, month: int) -> MergedCalendar:
        """Fetch, expand and merge everything for one month.

        Never raises for remote failures; unreachable sources contribute no
        events.
        """
        window = DateWindow.for_month(year, month)
        self._reload_projects()
        self._generation += 1
        generation = self._generation
        logger.debug("Building calendar for %04d-%02d (generation %d)", year, month, generation)

        remote = await self._collect_remote(window)
        calendar = self._merge(remote, window)

        if generation != self._generation:
            logger.info(
                "Discarding stale refresh for %04d-%02d (generation %d, current %d)",
                year,
                month,
                generation,
                self._generation,
            )
            return calendar

        self._remote_events = remote
        self._window = window
        self._commit(calendar)
        return calendar

    def remerge(self) -> Optional[MergedCalendar]:
        """Rebuild the current calendar from cached remote events and fresh store data.

        Returns None when nothing has been built yet.
        """
        if self._window is None:
            logger.debug("Remerge requested before first build; ignoring")
            return None
        calendar = self._merge(self._remote_events, self._window)
        self._commit(calendar)
        return calendar

    def invalidate_cache(self) -> None:
        """Drop cached feed text so the next build fetches every feed again."""
        logger.debug("Clearing %d cached calendar feeds", len(self._feed_cache))
        self._feed_cache.clear()

    async def aclose(self) -> None:
        for unsubscribe in self._store_unsubscribers:
            unsubscribe()
        self._store_unsubscribers = []
        if self._owns_fetcher:
            await self.fetcher.aclose()
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def _on_store_change(self) -> None:
        logger.debug("Store changed; re-merging current calendar")
        self.remerge()

    def _reload_projects(self) -> None:
        # File-backed project stores are edited externally; pick up changes per build
        reload = getattr(self.project_store, "reload", None)
        if reload is not None:
            reload()

    def _merge(self, remote: list[ParsedEvent], window: DateWindow) -> MergedCalendar:
        custom = self.event_store.list() if self.event_store is not None else []
        projects = self.project_store.list() if self.project_store is not None else []
        return self.merger.merge(remote, custom, projects, window)

    def _commit(self, calendar: MergedCalendar) -> None:
        self._calendar = calendar
        for listener in list(self._listeners):
            try:
                listener(calendar)
            except Exception:
                logger.exception("Calendar listener failed")

    async def _collect_remote(self, window: DateWindow) -> list[ParsedEvent]:
        feed_task = self._feed_events(window)
        provider_tasks = [source.fetch_events(window) for source in self.sources]
        results = await asyncio.gather(feed_task, *provider_tasks, return_exceptions=True)

        feed_result, provider_results = results[0], results[1:]
        remote: list[ParsedEvent] = []
        if isinstance(feed_result, BaseException):
            logger.error("Calendar feed failed: %s", feed_result, exc_info=feed_result)
        else:
            remote.extend(feed_result)

        for source, result in zip(self.sources, provider_results):
            if isinstance(result, RemoteSourceAuthError):
                logger.warning("%s token rejected; skipping its events", source.name)
            elif isinstance(result, RemoteSourceError):
                logger.warning("%s unavailable: %s", source.name, result)
            elif isinstance(result, BaseException):
                logger.error("%s failed: %s", source.name, result, exc_info=result)
            else:
                remote.extend(self.expander.expand(result, window.start, window.end))

        return remote

    async def _feed_events(self, window: DateWindow) -> list[ParsedEvent]:
        url = getattr(self.config, "ical_url", None)
        if not url:
            return []

        text = await self._feed_text(url)
        if not text:
            return []
        events = self.parser.parse(text)
        return self.expander.expand(events, window.start, window.end)

    async def _feed_text(self, url: str) -> str:
        cached = self._feed_cache.get(url)
        now = self._clock()
        if cached is not None and now - cached[0] < self.cache_ttl:
            logger.debug("Using cached calendar feed (%.0fs old)", now - cached[0])
            return cached[1]

        text = await self.fetcher.fetch_ical_text(url)
        if text:
            self._feed_cache[url] = (now, text)
        return text
