"""HTTP client for downloading ICS calendar feeds - availability_lite."""

import asyncio
import logging
import random
from collections.abc import Sequence
from datetime import tzinfo
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from availability_lite.calendar.ics_parser import ICSParser
from availability_lite.calendar.models import FetchResult
from availability_lite.exceptions import (
    ICSFetchError,
    ICSNetworkError,
    ICSParseError,
    ICSTimeoutError,
)

logger = logging.getLogger(__name__)

# Backoff calculation constants
MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3

# Some providers (Office365) reject requests that do not look like a browser
DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/calendar, text/plain, application/octet-stream, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}


class ICSFetcher:
    """Async HTTP client for downloading ICS calendar feeds."""

    def __init__(self, settings: Any, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize ICS fetcher.

        Args:
            settings: Application settings (request_timeout, max_retries, retry_backoff_factor)
            client: Optional shared HTTP client; it is never closed by the fetcher
        """
        self.settings = settings
        self.client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "ICSFetcher":
        await self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self.client is not None and self._owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed individual HTTP client")
        if self._owns_client:
            self.client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            request_timeout = getattr(self.settings, "request_timeout", 30)
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=10.0, read=request_timeout, write=10.0, pool=30.0),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            )
            self._owns_client = True
        return self.client

    def validate_url(self, url: str) -> bool:
        """Allow only absolute HTTP(S) URLs with a hostname."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            logger.warning("Blocked non-HTTP(S) calendar URL: %s", url)
            return False
        if not parsed.hostname:
            logger.warning("Blocked calendar URL with missing hostname: %s", url)
            return False
        return True

    def _calculate_backoff(self, attempt: int, backoff_factor: float) -> float:
        """Exponential backoff with jitter, capped at MAX_BACKOFF_SECONDS."""
        base_backoff = min(backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311 - jitter not cryptographic
        return base_backoff + jitter

    async def _request_with_retry(self, url: str) -> httpx.Response:
        """GET ``url``, retrying timeouts and network errors with backoff.

        HTTP status errors are not retried.
        """
        client = await self._ensure_client()
        max_retries = int(getattr(self.settings, "max_retries", 3))
        backoff_factor = float(getattr(self.settings, "retry_backoff_factor", 1.5))

        attempt = 0
        while True:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= max_retries:
                    logger.error("All %d attempts failed for %s: %s", attempt + 1, url, e)
                    raise
                backoff_time = self._calculate_backoff(attempt, backoff_factor)
                logger.warning(
                    "Request failed (attempt %s/%s), retrying in %.1fs: %s",
                    attempt + 1,
                    max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1
            else:
                logger.debug(
                    "Fetched ICS from %s (attempt %d) - %d bytes", url, attempt + 1, len(response.content)
                )
                return response

    async def fetch_text(self, url: str) -> str:
        """Download ICS text from ``url``.

        Raises:
            ICSTimeoutError: The request timed out on every attempt
            ICSNetworkError: The host could not be reached on every attempt
            ICSFetchError: Blocked URL, HTTP error status, other client errors
                such as protocol failures, or an empty body
        """
        if not self.validate_url(url):
            raise ICSFetchError(f"URL blocked: {url}")

        try:
            response = await self._request_with_retry(url)
        except httpx.TimeoutException as e:
            raise ICSTimeoutError(f"Request timeout fetching {url}") from e
        except httpx.HTTPStatusError as e:
            raise ICSFetchError(f"HTTP {e.response.status_code}: {e.response.reason_phrase}") from e
        except httpx.NetworkError as e:
            raise ICSNetworkError(f"Network error: {e}") from e
        except httpx.HTTPError as e:
            raise ICSFetchError(f"HTTP client error: {e}") from e

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
            logger.warning("Unexpected content type from %s: %s", url, content_type)

        content = response.text
        if not content.strip():
            raise ICSFetchError("Empty content received")
        return content

    async def fetch_source(self, url: Optional[str], tz: tzinfo) -> FetchResult:
        """Fetch and parse one calendar feed; failures become ``FetchResult.error``."""
        if not url:
            return FetchResult(error="No calendar URL configured")

        try:
            content = await self.fetch_text(url)
            data = ICSParser(tz).parse(content, source_url=url)
        except (ICSFetchError, ICSParseError) as e:
            logger.exception("Failed to load calendar %s", url)
            return FetchResult(error=str(e))

        return FetchResult(data=data)


async def fetch_sources(
    fetcher: ICSFetcher,
    calendar_url: Optional[str],
    plan_urls: Sequence[str],
    tz: tzinfo,
) -> tuple[FetchResult, list[FetchResult]]:
    """Fetch the primary feed and every plan feed concurrently."""
    results = await asyncio.gather(
        fetcher.fetch_source(calendar_url, tz),
        *(fetcher.fetch_source(url, tz) for url in plan_urls),
    )
    return results[0], list(results[1:])
