"""Tests for the admin API client and tool types."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from admin_agent.telemetry.trace import TraceContext
from admin_agent.tools.admin_api import ADMIN_API_TOOL_NAME, AdminApiClient, admin_api_tool
from admin_agent.tools.types import AdminRequest, AuthContext


def _response(status: int, json_body: object = None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.content = b"x" if json_body is not None or text else b""
    if isinstance(json_body, Exception):
        response.json.side_effect = json_body
    else:
        response.json.return_value = json_body
    response.text = text
    return response


class TestAdminApiClient:
    """Test AdminApiClient class."""

    @pytest.fixture
    def client(self) -> AdminApiClient:
        """Client pointed at a fake backend."""
        return AdminApiClient(base_url="http://backend:9000/", timeout_seconds=5)

    @pytest.mark.asyncio
    async def test_get_success(self, client: AdminApiClient) -> None:
        """A 2xx answer is a successful result with the decoded body."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                return_value=_response(200, {"orders": [], "count": 0})
            )
            mock_client_class.return_value.__aenter__.return_value = mock_http

            result = await client.request(
                AdminRequest(path="/admin/orders", query={"limit": 5, "expand": None}),
                auth=AuthContext(authorization="Bearer caller", cookie="sid=1"),
                trace_ctx=TraceContext.new_trace(),
            )

        assert result.success
        assert result.tool_name == ADMIN_API_TOOL_NAME
        assert result.status_code == 200
        assert result.output == {"orders": [], "count": 0}

        args = mock_http.request.call_args
        assert args.args == ("GET", "http://backend:9000/admin/orders")
        assert args.kwargs["params"] == {"limit": 5}
        assert args.kwargs["headers"]["Authorization"] == "Bearer caller"
        assert args.kwargs["headers"]["Cookie"] == "sid=1"

    @pytest.mark.asyncio
    async def test_anonymous_caller_sends_no_credentials(self, client: AdminApiClient) -> None:
        """Without caller credentials no Authorization header is added."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(401, {"message": "Unauthorized"}))
            mock_client_class.return_value.__aenter__.return_value = mock_http

            result = await client.request(AdminRequest(path="/admin/orders"))

        headers = mock_http.request.call_args.kwargs["headers"]
        assert "Authorization" not in headers
        assert not result.success
        assert result.error == "HTTP 401: Unauthorized"

    @pytest.mark.asyncio
    async def test_query_flattening(self, client: AdminApiClient) -> None:
        """Booleans become strings and lists are kept as repeated params."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(204))
            mock_client_class.return_value.__aenter__.return_value = mock_http

            result = await client.request(
                AdminRequest(
                    method="delete",
                    path="/admin/tags/t_1",
                    query={"force": True, "ids": [1, 2]},
                )
            )

        params = mock_http.request.call_args.kwargs["params"]
        assert params == {"force": "true", "ids": ["1", "2"]}
        assert result.success
        assert result.output is None

    @pytest.mark.asyncio
    async def test_non_json_body(self, client: AdminApiClient) -> None:
        """A non-JSON error body is kept as text."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                return_value=_response(502, ValueError("not json"), text="Bad Gateway")
            )
            mock_client_class.return_value.__aenter__.return_value = mock_http

            result = await client.request(AdminRequest(path="/admin/orders"))

        assert not result.success
        assert result.output == "Bad Gateway"
        assert result.error == "HTTP 502"

    @pytest.mark.asyncio
    async def test_transport_error(self, client: AdminApiClient) -> None:
        """Transport errors become unsuccessful results, not exceptions."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(side_effect=httpx.ConnectError("refused"))
            mock_client_class.return_value.__aenter__.return_value = mock_http

            result = await client.request(AdminRequest(path="/admin/orders"))

        assert not result.success
        assert result.status_code is None
        assert result.error == "Backend unreachable: ConnectError"


class TestToolTypes:
    """Test request, auth and tool definition types."""

    def test_request_method_and_describe(self) -> None:
        """Methods are upper-cased and requests render on one line."""
        request = AdminRequest(method="patch", path="/admin/designs/d_1", query={"a": 1, "b": "x"})
        assert request.method == "PATCH"
        assert request.is_write
        assert request.describe() == "PATCH /admin/designs/d_1?a=1&b=x"
        assert AdminRequest(path="/admin/orders").describe() == "GET /admin/orders"

    def test_auth_context(self) -> None:
        """Only supplied credentials become headers."""
        assert AuthContext().is_anonymous
        assert AuthContext().headers() == {}
        auth = AuthContext(cookie="sid=2")
        assert not auth.is_anonymous
        assert auth.headers() == {"Cookie": "sid=2"}

    def test_tool_render(self) -> None:
        """The tool definition renders its parameters."""
        rendered = admin_api_tool.render()
        assert rendered.startswith("admin_api_request:")
        assert "  - path (string, required)" in rendered
        assert "  - body (object, optional)" in rendered
