"""Tests for chat completions adapters."""

from typing import Any

import pytest

from admin_agent.llm_client.adapters import (
    adapt_chat_completions_response,
    build_chat_completions_request,
    looks_like_rate_limit,
    raise_for_error_body,
)
from admin_agent.llm_client.types import (
    LLMClientError,
    LLMInvalidResponse,
    LLMRateLimit,
    LLMServerError,
)


class TestAdaptChatCompletionsResponse:
    """Test chat completions response adapter."""

    def test_basic_response(self) -> None:
        """Content, model, usage and finish reason are normalized."""
        response_data: dict[str, Any] = {
            "model": "planner-a",
            "choices": [
                {
                    "message": {"role": "assistant", "content": "Hello"},
                    "finish_reason": "stop",
                }
            ],
            "usage": {"prompt_tokens": 10, "completion_tokens": 1, "total_tokens": 11},
        }

        result = adapt_chat_completions_response(response_data)

        assert result["content"] == "Hello"
        assert result["role"] == "assistant"
        assert result["model"] == "planner-a"
        assert result["finish_reason"] == "stop"
        assert result["usage"]["prompt_tokens"] == 10
        assert result["raw"] is response_data

    def test_content_parts_are_joined(self) -> None:
        """List content is flattened to text."""
        response_data = {
            "choices": [
                {"message": {"content": [{"type": "text", "text": "a"}, {"text": "b"}, "x"]}}
            ]
        }
        result = adapt_chat_completions_response(response_data)
        assert result["content"] == "ab"
        assert result["usage"]["total_tokens"] == 0

    def test_null_content(self) -> None:
        """A null content becomes an empty string."""
        result = adapt_chat_completions_response({"choices": [{"message": {"content": None}}]})
        assert result["content"] == ""

    def test_no_choices(self) -> None:
        """A body without choices is invalid."""
        with pytest.raises(LLMInvalidResponse):
            adapt_chat_completions_response({"choices": []})

    def test_embedded_rate_limit(self) -> None:
        """HTTP 200 bodies with a 429 error object are rate limits."""
        with pytest.raises(LLMRateLimit):
            adapt_chat_completions_response({"error": {"message": "slow down", "code": 429}})


class TestRaiseForErrorBody:
    """Test classification of embedded error objects."""

    def test_no_error(self) -> None:
        """Bodies without an error pass."""
        raise_for_error_body({"choices": []})

    def test_rate_limit_wording(self) -> None:
        """Rate-limit wording without a code is still a rate limit."""
        with pytest.raises(LLMRateLimit):
            raise_for_error_body({"error": "Rate limit exceeded: free-models-per-day"})

    def test_server_error(self) -> None:
        """5xx codes are server errors."""
        with pytest.raises(LLMServerError) as exc_info:
            raise_for_error_body({"error": {"message": "upstream failed", "code": "502"}})
        assert exc_info.value.status_code == 502

    def test_other_error(self) -> None:
        """Anything else is a generic client error."""
        with pytest.raises(LLMClientError) as exc_info:
            raise_for_error_body({"error": {"message": "bad model", "code": 400}})
        assert not isinstance(exc_info.value, (LLMRateLimit, LLMServerError))


class TestBuildChatCompletionsRequest:
    """Test request payload construction."""

    def test_minimal(self) -> None:
        """Only model and messages are required."""
        payload = build_chat_completions_request(
            messages=[{"role": "user", "content": "hi"}], model="m"
        )
        assert payload == {"model": "m", "messages": [{"role": "user", "content": "hi"}]}

    def test_optional_fields(self) -> None:
        """Optional fields are added when set."""
        payload = build_chat_completions_request(
            messages=[{"content": None}],
            model="m",
            max_tokens=100,
            temperature=0.0,
            response_format={"type": "json_object"},
        )
        assert payload["messages"] == [{"role": "user", "content": ""}]
        assert payload["max_tokens"] == 100
        assert payload["temperature"] == 0.0
        assert payload["response_format"] == {"type": "json_object"}


def test_looks_like_rate_limit() -> None:
    """Rate-limit markers are detected case-insensitively."""
    assert looks_like_rate_limit("HTTP 429")
    assert looks_like_rate_limit("Too Many Requests")
    assert not looks_like_rate_limit("model not found")
    assert not looks_like_rate_limit("")
