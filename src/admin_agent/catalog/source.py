"""Catalog source and process-wide catalog cache.

CatalogSource fetches the OpenAPI-like catalog document over HTTP. CatalogCache
owns the current CatalogIndex snapshot: readers get whatever snapshot is
current, a refresh builds a new index off to the side and swaps the reference
in one assignment, and concurrent refreshes share a single in-flight task.
"""

import asyncio
import base64
import time
from collections.abc import Callable
from typing import Any

import httpx

from admin_agent.catalog.index import CatalogIndex, extract_endpoints
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import CATALOG_REFRESH_FAILED, CATALOG_REFRESHED

log = get_logger(__name__)


class CatalogFetchError(Exception):
    """Raised when the catalog document cannot be fetched or decoded."""

    pass


def build_catalog_auth_header(header: str | None, token: str | None) -> str | None:
    """Build the Authorization header value for the catalog source.

    An explicit header wins. A token that already carries a scheme ("Basic ...",
    "Bearer ...") is used as-is; a JWT-looking token becomes a bearer token;
    anything else is sent as HTTP Basic with the token as user name.
    """
    if header and header.strip():
        return header.strip()
    if not token or not token.strip():
        return None
    token = token.strip()
    if token.lower().startswith(("basic ", "bearer ")):
        return token
    if token.count(".") == 2:
        return f"Bearer {token}"
    encoded = base64.b64encode(f"{token}:".encode()).decode("ascii")
    return f"Basic {encoded}"


class CatalogSource:
    """Read-only HTTP source of the catalog document."""

    def __init__(
        self,
        url: str,
        auth_header: str | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        self.url = url
        self.auth_header = auth_header
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        """False when no catalog URL is set."""
        return bool(self.url)

    async def fetch(self) -> Any:
        """GET the catalog document.

        Returns:
            Decoded JSON document.

        Raises:
            CatalogFetchError: On transport errors, non-2xx status, or invalid JSON.
        """
        headers = {"Accept": "application/json"}
        if self.auth_header:
            headers["Authorization"] = self.auth_header
        timeout = httpx.Timeout(connect=5.0, read=self.timeout_seconds, write=5.0, pool=5.0)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(self.url, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise CatalogFetchError(
                f"Catalog source returned {e.response.status_code}"
            ) from None
        except httpx.RequestError as e:
            raise CatalogFetchError(f"Catalog source unreachable: {type(e).__name__}") from None
        except ValueError as e:
            raise CatalogFetchError(f"Catalog document is not JSON: {e}") from None


class CatalogCache:
    """Owns the current CatalogIndex snapshot with TTL-based rebuilds.

    Attributes:
        source: Where catalog documents come from (None disables fetching).
        ttl_seconds: Snapshot lifetime before the next get() refreshes it.
    """

    def __init__(
        self,
        source: CatalogSource | None,
        ttl_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._index = CatalogIndex.empty()
        self._loaded_at: float | None = None
        self._refresh_task: asyncio.Task[CatalogIndex] | None = None

    @property
    def current(self) -> CatalogIndex:
        """The current snapshot, without triggering a refresh."""
        return self._index

    def is_stale(self) -> bool:
        """True if the snapshot was never loaded or is past its TTL."""
        return self._loaded_at is None or self._clock() - self._loaded_at >= self.ttl_seconds

    def install(self, index: CatalogIndex) -> None:
        """Swap in a prebuilt snapshot (tests, static catalogs)."""
        self._index = index
        self._loaded_at = self._clock()

    def invalidate(self) -> None:
        """Force the next get() to rebuild."""
        self._loaded_at = None

    async def get(self) -> CatalogIndex:
        """Return a fresh-enough snapshot, rebuilding it if stale.

        When a rebuild fails the previous snapshot stays in place (possibly the
        empty one, which puts validation into its pass-through mode).
        """
        if not self.is_stale():
            return self._index
        if self.source is None or not self.source.configured:
            self._loaded_at = self._clock()
            return self._index
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._rebuild())
        # shield: one caller being cancelled must not cancel the shared rebuild
        return await asyncio.shield(self._refresh_task)

    async def _rebuild(self) -> CatalogIndex:
        assert self.source is not None
        started = self._clock()
        try:
            doc = await self.source.fetch()
        except CatalogFetchError as e:
            log.warning(
                CATALOG_REFRESH_FAILED,
                error=str(e),
                keeping_endpoints=len(self._index),
            )
            # back off for a full TTL instead of hammering the source
            self._loaded_at = self._clock()
            return self._index

        index = CatalogIndex.build(extract_endpoints(doc))
        self._index = index
        self._loaded_at = self._clock()
        log.info(
            CATALOG_REFRESHED,
            endpoints=len(index),
            duration_ms=int((self._clock() - started) * 1000),
        )
        return index


_cache: CatalogCache | None = None


def get_catalog_cache() -> CatalogCache:
    """Get the process-wide catalog cache (created from settings on first use)."""
    global _cache
    if _cache is None:
        from admin_agent.config import settings  # noqa: PLC0415

        source = CatalogSource(
            url=settings.catalog_url,
            auth_header=build_catalog_auth_header(
                settings.catalog_auth_header, settings.catalog_token
            ),
            timeout_seconds=settings.catalog_timeout_seconds,
        )
        _cache = CatalogCache(source, ttl_seconds=settings.catalog_ttl_seconds)
    return _cache
