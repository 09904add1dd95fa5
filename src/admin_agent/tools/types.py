"""Type definitions for the admin API tool layer.

This module defines the Pydantic models for the admin API tool, the caller's
authorization context, concrete requests and their results.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class ToolParameter(BaseModel):
    """Parameter definition for a tool."""

    name: str = Field(..., description="Parameter name")
    type: Literal["string", "number", "boolean", "object", "array"] = Field(
        ..., description="Parameter type"
    )
    description: str = Field(..., description="Parameter description for LLM")
    required: bool = Field(True, description="Whether parameter is required")


class ToolDefinition(BaseModel):
    """Tool definition rendered into planning prompts."""

    name: str = Field(..., description="Tool name (e.g., 'admin_api_request')")
    description: str = Field(..., description="Clear description for LLM")
    parameters: list[ToolParameter] = Field(default_factory=list, description="Tool parameters")
    auto_execute_methods: list[str] = Field(
        default_factory=lambda: ["GET"],
        description="HTTP methods executed without confirmation",
    )

    def render(self) -> str:
        """Render as a compact prompt block."""
        lines = [f"{self.name}: {self.description}"]
        for param in self.parameters:
            flag = "required" if param.required else "optional"
            lines.append(f"  - {param.name} ({param.type}, {flag}): {param.description}")
        return "\n".join(lines)


class AuthContext(BaseModel):
    """The caller's original credentials, forwarded unchanged to the backend."""

    authorization: str | None = None
    cookie: str | None = None

    def headers(self) -> dict[str, str]:
        """HTTP headers carrying the credentials (empty when anonymous)."""
        headers: dict[str, str] = {}
        if self.authorization:
            headers["Authorization"] = self.authorization
        if self.cookie:
            headers["Cookie"] = self.cookie
        return headers

    @property
    def is_anonymous(self) -> bool:
        """True when no credentials were supplied."""
        return not (self.authorization or self.cookie)


class AdminRequest(BaseModel):
    """One concrete admin API request."""

    method: str = "GET"
    path: str
    query: dict[str, Any] = Field(default_factory=dict)
    body: dict[str, Any] | None = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return (value or "GET").strip().upper()

    @property
    def is_write(self) -> bool:
        """True for POST/PUT/PATCH/DELETE."""
        return self.method != "GET"

    def describe(self) -> str:
        """One-line "METHOD /path?query" rendering."""
        if not self.query:
            return f"{self.method} {self.path}"
        query = "&".join(f"{k}={v}" for k, v in self.query.items())
        return f"{self.method} {self.path}?{query}"


class ToolResult(BaseModel):
    """Result from one admin API call."""

    tool_name: str = Field(..., description="Name of the executed tool")
    request: AdminRequest
    success: bool = Field(..., description="Whether the call returned 2xx")
    status_code: int | None = Field(None, description="HTTP status, None on transport errors")
    output: Any = Field(None, description="Decoded response body")
    error: str | None = Field(None, description="Error message if failed")
    latency_ms: float = Field(0.0, ge=0, description="Execution latency in milliseconds")
