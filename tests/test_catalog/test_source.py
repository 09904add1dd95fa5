"""Tests for the catalog source and cache."""

import asyncio
import base64
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from admin_agent.catalog.index import CatalogIndex, Endpoint
from admin_agent.catalog.source import (
    CatalogCache,
    CatalogFetchError,
    CatalogSource,
    build_catalog_auth_header,
)

DOC = {"items": [{"method": "GET", "path": "/admin/orders", "summary": "List orders"}]}


class FakeClock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _source(**fetch_kwargs: object) -> MagicMock:
    source = MagicMock(spec=CatalogSource)
    source.configured = True
    source.fetch = AsyncMock(**fetch_kwargs)
    return source


class TestCatalogCache:
    """Test the snapshot cache lifecycle."""

    @pytest.mark.asyncio
    async def test_install_and_current(self) -> None:
        """An installed snapshot is served without fetching."""
        cache = CatalogCache(None)
        index = CatalogIndex.build([Endpoint.create("GET", "/admin/tasks")])

        cache.install(index)

        assert cache.current is index
        assert await cache.get() is index

    @pytest.mark.asyncio
    async def test_unconfigured_source_stays_empty(self) -> None:
        """No source means the empty (degraded) snapshot."""
        cache = CatalogCache(None)
        index = await cache.get()
        assert index.is_empty

    @pytest.mark.asyncio
    async def test_ttl_refresh(self) -> None:
        """A snapshot is rebuilt only after its TTL passes."""
        clock = FakeClock()
        source = _source(return_value=DOC)
        cache = CatalogCache(source, ttl_seconds=60, clock=clock)

        first = await cache.get()
        again = await cache.get()
        clock.now += 61
        refreshed = await cache.get()

        assert first.has("GET", "/admin/orders")
        assert again is first
        assert refreshed is not first
        assert source.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_rebuild(self) -> None:
        """invalidate() makes the next get() fetch."""
        source = _source(return_value=DOC)
        cache = CatalogCache(source, ttl_seconds=600, clock=FakeClock())
        await cache.get()

        cache.invalidate()
        await cache.get()

        assert source.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous(self) -> None:
        """A fetch failure keeps the last good snapshot."""
        source = _source(side_effect=CatalogFetchError("down"))
        cache = CatalogCache(source, clock=FakeClock())
        previous = CatalogIndex.build([Endpoint.create("GET", "/admin/orders")])
        cache.install(previous)
        cache.invalidate()

        assert await cache.get() is previous
        assert not cache.is_stale()

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_refresh(self) -> None:
        """Concurrent callers share one in-flight rebuild."""
        source = _source(return_value=DOC)
        cache = CatalogCache(source, clock=FakeClock())

        first, second = await asyncio.gather(cache.get(), cache.get())

        assert first is second
        assert source.fetch.await_count == 1


class TestCatalogSource:
    """Test fetching the catalog document."""

    @pytest.mark.asyncio
    async def test_fetch(self) -> None:
        """The document is fetched with the configured Authorization header."""
        response = MagicMock()
        response.json.return_value = DOC
        response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = AsyncMock()
            mock_client.get = AsyncMock(return_value=response)
            mock_client_class.return_value.__aenter__.return_value = mock_client

            source = CatalogSource("http://catalog/openapi.json", auth_header="Bearer t")
            doc = await source.fetch()

        assert doc == DOC
        headers = mock_client.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer t"

    @pytest.mark.asyncio
    async def test_fetch_http_error(self) -> None:
        """Non-2xx answers raise CatalogFetchError."""
        error_response = MagicMock()
        error_response.status_code = 401
        response = MagicMock()
        response.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError("401", request=MagicMock(), response=error_response)
        )

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = AsyncMock()
            mock_client.get = AsyncMock(return_value=response)
            mock_client_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(CatalogFetchError, match="401"):
                await CatalogSource("http://catalog/openapi.json").fetch()

    def test_configured(self) -> None:
        """An empty URL means no source."""
        assert not CatalogSource("").configured
        assert CatalogSource("http://catalog").configured


class TestBuildCatalogAuthHeader:
    """Test catalog credential handling."""

    def test_explicit_header_wins(self) -> None:
        """A literal header is used as-is."""
        assert build_catalog_auth_header(" Basic abc ", "ignored") == "Basic abc"

    def test_scheme_token(self) -> None:
        """Tokens with a scheme are passed through."""
        assert build_catalog_auth_header(None, "Bearer xyz") == "Bearer xyz"

    def test_jwt_token(self) -> None:
        """JWT-looking tokens become bearer tokens."""
        assert build_catalog_auth_header(None, "aaa.bbb.ccc") == "Bearer aaa.bbb.ccc"

    def test_api_key_token(self) -> None:
        """Other tokens are sent as basic auth with an empty password."""
        expected = "Basic " + base64.b64encode(b"sk_key:").decode()
        assert build_catalog_auth_header(None, "sk_key") == expected

    def test_nothing(self) -> None:
        """No credentials means no header."""
        assert build_catalog_auth_header(None, None) is None
        assert build_catalog_auth_header("", "  ") is None
