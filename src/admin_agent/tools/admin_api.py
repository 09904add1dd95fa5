"""HTTP client for the administrative backend API.

Every request carries the caller's own credentials (AuthContext) and nothing
else; the client never adds or upgrades authorization. Failures are returned
as unsuccessful ToolResults so the executor can record them and keep going.
"""

import time
from typing import Any

import httpx

from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import BACKEND_CALL_COMPLETED, BACKEND_CALL_FAILED
from admin_agent.telemetry.trace import TraceContext
from admin_agent.tools.types import (
    AdminRequest,
    AuthContext,
    ToolDefinition,
    ToolParameter,
    ToolResult,
)

log = get_logger(__name__)

ADMIN_API_TOOL_NAME = "admin_api_request"

admin_api_tool = ToolDefinition(
    name=ADMIN_API_TOOL_NAME,
    description=(
        "Call the admin REST API. Only GET requests run immediately; "
        "POST/PUT/PATCH/DELETE are held for the user's confirmation."
    ),
    parameters=[
        ToolParameter(name="method", type="string", description="GET, POST, PUT, PATCH or DELETE"),
        ToolParameter(
            name="path", type="string", description="Path from the allowed list, e.g. /admin/orders"
        ),
        ToolParameter(name="query", type="object", description="Query parameters", required=False),
        ToolParameter(
            name="body", type="object", description="JSON body for writes", required=False
        ),
    ],
)


def _flatten_query(query: dict[str, Any]) -> dict[str, Any]:
    flattened: dict[str, Any] = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, bool):
            flattened[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            flattened[key] = [str(v) for v in value]
        else:
            flattened[key] = value
    return flattened


class AdminApiClient:
    """Authenticated pass-through client for the admin API.

    Attributes:
        base_url: Backend base URL (e.g., "http://localhost:9000").
        timeout_seconds: Read timeout per request.
    """

    def __init__(self, base_url: str | None = None, timeout_seconds: float | None = None) -> None:
        from admin_agent.config import settings  # noqa: PLC0415

        self.base_url = (base_url or settings.backend_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.backend_timeout_seconds

    async def request(
        self,
        request: AdminRequest,
        auth: AuthContext | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> ToolResult:
        """Execute one request with the caller's credentials.

        Args:
            request: Concrete method, path, query and body.
            auth: Caller credentials, forwarded unchanged.
            trace_ctx: Trace context for log correlation.

        Returns:
            ToolResult; success is False for non-2xx or transport errors.
        """
        auth = auth or AuthContext()
        fields = trace_ctx.log_fields() if trace_ctx else {}
        headers = {"Accept": "application/json", **auth.headers()}
        timeout = httpx.Timeout(connect=5.0, read=float(self.timeout_seconds), write=10.0, pool=5.0)

        start_time = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.request(
                    request.method,
                    f"{self.base_url}{request.path}",
                    params=_flatten_query(request.query),
                    json=request.body,
                    headers=headers,
                )
        except httpx.RequestError as e:
            latency_ms = (time.monotonic() - start_time) * 1000
            log.warning(
                BACKEND_CALL_FAILED,
                method=request.method,
                path=request.path,
                error_type=type(e).__name__,
                **fields,
            )
            return ToolResult(
                tool_name=ADMIN_API_TOOL_NAME,
                request=request,
                success=False,
                error=f"Backend unreachable: {type(e).__name__}",
                latency_ms=latency_ms,
            )

        latency_ms = (time.monotonic() - start_time) * 1000
        try:
            output: Any = response.json() if response.content else None
        except ValueError:
            output = response.text[:2000]

        success = 200 <= response.status_code < 300
        log.info(
            BACKEND_CALL_COMPLETED if success else BACKEND_CALL_FAILED,
            method=request.method,
            path=request.path,
            status=response.status_code,
            latency_ms=int(latency_ms),
            **fields,
        )
        error = None
        if not success:
            message = output.get("message") if isinstance(output, dict) else None
            error = f"HTTP {response.status_code}" + (f": {message}" if message else "")
        return ToolResult(
            tool_name=ADMIN_API_TOOL_NAME,
            request=request,
            success=success,
            status_code=response.status_code,
            output=output,
            error=error,
            latency_ms=latency_ms,
        )
