"""Tests for InferenceClient."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from admin_agent.llm_client.client import InferenceClient
from admin_agent.llm_client.types import (
    LLMClientError,
    LLMConnectionError,
    LLMInvalidResponse,
    LLMRateLimit,
    LLMServerError,
    LLMTimeout,
)
from admin_agent.telemetry.trace import TraceContext


def _completion(content: str = "Hello", model: str = "planner-a") -> dict[str, Any]:
    return {
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 3, "total_tokens": 13},
    }


def _status_error(status: int, text: str) -> httpx.HTTPStatusError:
    response = MagicMock()
    response.status_code = status
    response.text = text
    return httpx.HTTPStatusError(f"HTTP {status}", request=MagicMock(), response=response)


class TestInferenceClient:
    """Test InferenceClient class."""

    @pytest.fixture
    def client(self) -> InferenceClient:
        """Create an InferenceClient instance."""
        return InferenceClient(
            base_url="http://localhost:1234/v1", api_key="secret", timeout_seconds=30
        )

    def _mock_http(self, mock_client_class: MagicMock, **post_kwargs: Any) -> AsyncMock:
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(**post_kwargs)
        mock_client_class.return_value.__aenter__.return_value = mock_client
        return mock_client

    def test_endpoint(self) -> None:
        """The chat completions URL is derived from the base URL."""
        assert InferenceClient(base_url="http://h/v1").endpoint == "http://h/v1/chat/completions"
        assert InferenceClient(base_url="http://h/").endpoint == "http://h/v1/chat/completions"
        assert (
            InferenceClient(base_url="http://h/v1/chat/completions").endpoint
            == "http://h/v1/chat/completions"
        )

    @pytest.mark.asyncio
    async def test_complete_success(self, client: InferenceClient) -> None:
        """A successful call returns the normalized response."""
        response_obj = MagicMock()
        response_obj.json.return_value = _completion()
        response_obj.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = self._mock_http(mock_client_class, return_value=response_obj)

            response = await client.complete(
                model_id="planner-a",
                messages=[{"role": "user", "content": "Hi"}],
                system_prompt="Be brief.",
                max_tokens=50,
                trace_ctx=TraceContext.new_trace(),
            )

        assert response["content"] == "Hello"
        assert response["usage"]["completion_tokens"] == 3

        url = mock_client.post.call_args.args[0]
        payload = mock_client.post.call_args.kwargs["json"]
        headers = mock_client.post.call_args.kwargs["headers"]
        assert url == "http://localhost:1234/v1/chat/completions"
        assert payload["model"] == "planner-a"
        assert payload["max_tokens"] == 50
        assert payload["messages"][0] == {"role": "system", "content": "Be brief."}
        assert headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_missing_model_is_filled(self, client: InferenceClient) -> None:
        """The requested model id is used when the provider omits it."""
        response_obj = MagicMock()
        response_obj.json.return_value = _completion(model="")
        response_obj.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client_class:
            self._mock_http(mock_client_class, return_value=response_obj)
            response = await client.complete("planner-b", [{"role": "user", "content": "x"}])

        assert response["model"] == "planner-b"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "text", "expected"),
        [
            (429, "Too Many Requests", LLMRateLimit),
            (400, "quota exceeded for model", LLMRateLimit),
            (503, "unavailable", LLMServerError),
            (404, "no such model", LLMClientError),
        ],
    )
    async def test_http_errors(
        self, client: InferenceClient, status: int, text: str, expected: type[Exception]
    ) -> None:
        """HTTP status errors are classified."""
        response_obj = MagicMock()
        response_obj.raise_for_status = MagicMock(side_effect=_status_error(status, text))

        with patch("httpx.AsyncClient") as mock_client_class:
            self._mock_http(mock_client_class, return_value=response_obj)
            with pytest.raises(expected) as exc_info:
                await client.complete("planner-a", [{"role": "user", "content": "x"}])

        if expected is LLMClientError:
            assert not isinstance(exc_info.value, (LLMRateLimit, LLMServerError))

    @pytest.mark.asyncio
    async def test_timeout(self, client: InferenceClient) -> None:
        """Timeouts raise LLMTimeout."""
        with patch("httpx.AsyncClient") as mock_client_class:
            self._mock_http(mock_client_class, side_effect=httpx.ReadTimeout("slow"))
            with pytest.raises(LLMTimeout):
                await client.complete("planner-a", [{"role": "user", "content": "x"}])

    @pytest.mark.asyncio
    async def test_connection_error(self, client: InferenceClient) -> None:
        """Connection failures raise LLMConnectionError."""
        with patch("httpx.AsyncClient") as mock_client_class:
            self._mock_http(mock_client_class, side_effect=httpx.ConnectError("refused"))
            with pytest.raises(LLMConnectionError):
                await client.complete("planner-a", [{"role": "user", "content": "x"}])

    @pytest.mark.asyncio
    async def test_embedded_error_body(self, client: InferenceClient) -> None:
        """A 200 response carrying a rate-limit error object raises LLMRateLimit."""
        response_obj = MagicMock()
        response_obj.json.return_value = {"error": {"message": "Rate limit exceeded", "code": 429}}
        response_obj.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client_class:
            self._mock_http(mock_client_class, return_value=response_obj)
            with pytest.raises(LLMRateLimit):
                await client.complete("planner-a", [{"role": "user", "content": "x"}])

    @pytest.mark.asyncio
    async def test_invalid_json(self, client: InferenceClient) -> None:
        """A non-JSON body raises LLMInvalidResponse."""
        response_obj = MagicMock()
        response_obj.json.side_effect = ValueError("Expecting value")
        response_obj.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client_class:
            self._mock_http(mock_client_class, return_value=response_obj)
            with pytest.raises(LLMInvalidResponse):
                await client.complete("planner-a", [{"role": "user", "content": "x"}])
