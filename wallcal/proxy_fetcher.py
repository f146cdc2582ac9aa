"""Fetch a remote iCal feed through an ordered chain of CORS proxies."""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .models import ProxyAttempt, ProxyFetchResult

logger = logging.getLogger(__name__)

ICAL_MARKER = "BEGIN:VCALENDAR"

SAME_ORIGIN_PROXY_PATH = "/api/calendar-proxy?url={url}"

DEFAULT_PROXY_TEMPLATES: tuple[str, ...] = (
    "https://api.allorigins.win/raw?url={url}",
    "https://corsproxy.io/?{url}",
)

DEFAULT_HEADERS = {
    "User-Agent": "wallcal/0.1 (+calendar aggregation)",
    "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.1",
}


class ProxyFetcher:
    """Walk the proxy fallback list until one returns a calendar body.

    Candidates are tried strictly in order, one GET each. Any network error,
    non-2xx status or body without ``BEGIN:VCALENDAR`` moves on to the next
    candidate. Exhausting the list yields an empty result, never an exception.
    """

    def __init__(self, settings: Any, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize proxy fetcher.

        Args:
            settings: Object exposing ``proxy_base_url``, ``proxy_templates`` and
                ``request_timeout`` (missing attributes use defaults)
            client: Optional shared HTTP client; it is never closed here
        """
        self.settings = settings
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

        logger.debug("Proxy fetcher initialized (shared_client: %s)", not self._owns_client)

    async def __aenter__(self) -> "ProxyFetcher":
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client and self.client is not None and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed proxy fetcher HTTP client")
        if self._owns_client:
            self.client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            request_timeout = float(getattr(self.settings, "request_timeout", 30))
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=10.0, read=request_timeout, write=10.0, pool=30.0),
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            )
            self._owns_client = True
        return self.client

    def candidate_urls(self, remote_url: str) -> list[str]:
        """Build the ordered proxy URLs for ``remote_url``.

        The same-origin proxy comes first when ``proxy_base_url`` is configured,
        followed by the public relay templates.
        """
        encoded = quote(remote_url, safe="")
        candidates = []

        base_url = getattr(self.settings, "proxy_base_url", None)
        if base_url:
            candidates.append(base_url.rstrip("/") + SAME_ORIGIN_PROXY_PATH.format(url=encoded))

        templates = getattr(self.settings, "proxy_templates", None) or DEFAULT_PROXY_TEMPLATES
        candidates.extend(template.format(url=encoded) for template in templates)
        return candidates

    async def fetch(self, remote_url: Optional[str]) -> ProxyFetchResult:
        """Fetch ``remote_url`` via the first proxy that returns a calendar.

        Returns:
            ProxyFetchResult with ``text`` set on success, or empty ``text`` and
            the per-candidate attempts when everything failed.
        """
        result = ProxyFetchResult()
        if not remote_url or not remote_url.strip():
            logger.debug("No remote calendar URL configured; skipping fetch")
            return result

        client = self._ensure_client()
        for candidate in self.candidate_urls(remote_url.strip()):
            attempt, text = await self._try_candidate(client, candidate)
            result.attempts.append(attempt)
            if attempt.accepted:
                result.text = text
                result.proxy_url = candidate
                logger.debug("Fetched calendar via %s (%d bytes)", candidate, len(text))
                return result

        logger.warning(
            "All %d calendar proxies failed for %s; showing no remote events",
            len(result.attempts),
            remote_url,
        )
        return result

    async def fetch_ical_text(self, remote_url: Optional[str]) -> str:
        """Return the calendar body, or ``""`` when no candidate succeeded."""
        return (await self.fetch(remote_url)).text

    async def _try_candidate(
        self, client: httpx.AsyncClient, url: str
    ) -> tuple[ProxyAttempt, str]:
        try:
            response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Calendar proxy %s failed: %s", url, e)
            return ProxyAttempt(url=url, error=str(e) or type(e).__name__), ""

        if not response.is_success:
            logger.warning("Calendar proxy %s returned HTTP %d", url, response.status_code)
            return ProxyAttempt(url=url, status_code=response.status_code, error="http status"), ""

        text = response.text
        if ICAL_MARKER not in text:
            logger.warning("Calendar proxy %s returned a non-calendar body", url)
            return (
                ProxyAttempt(url=url, status_code=response.status_code, error="not a calendar"),
                "",
            )

        return ProxyAttempt(url=url, status_code=response.status_code, accepted=True), text
