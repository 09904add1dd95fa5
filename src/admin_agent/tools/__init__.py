"""Admin API tool layer.

This module provides:
- The admin_api_request tool definition rendered into planning prompts
- AdminApiClient, which executes requests with the caller's credentials
- Request, result and auth context types
"""

from admin_agent.tools.admin_api import ADMIN_API_TOOL_NAME, AdminApiClient, admin_api_tool
from admin_agent.tools.types import (
    AdminRequest,
    AuthContext,
    ToolDefinition,
    ToolParameter,
    ToolResult,
)

__all__ = [
    "ADMIN_API_TOOL_NAME",
    "AdminApiClient",
    "admin_api_tool",
    "AdminRequest",
    "AuthContext",
    "ToolDefinition",
    "ToolParameter",
    "ToolResult",
]
