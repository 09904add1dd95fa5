"""Adapters between the OpenAI-compatible chat completions format and LLMResponse.

Routing providers sometimes answer HTTP 200 with an `error` object instead of
choices; those are classified here so rate limits still reach the rotation guard.
"""

from typing import Any

from admin_agent.llm_client.types import (
    LLMClientError,
    LLMInvalidResponse,
    LLMRateLimit,
    LLMResponse,
    LLMServerError,
)

_RATE_LIMIT_MARKERS = ("429", "rate limit", "rate-limit", "too many requests", "quota exceeded")


def looks_like_rate_limit(text: str) -> bool:
    """Return True if an error text describes a rate limit or exhausted quota."""
    lowered = (text or "").lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


def raise_for_error_body(response_data: dict[str, Any]) -> None:
    """Raise the matching LLMClientError if the body carries an `error` object.

    Args:
        response_data: Decoded JSON body.

    Raises:
        LLMRateLimit: For 429 codes or rate-limit wording.
        LLMServerError: For 5xx codes.
        LLMClientError: For any other embedded error.
    """
    error_obj = response_data.get("error")
    if error_obj is None:
        return

    if isinstance(error_obj, dict):
        message = str(error_obj.get("message") or error_obj)
        code = error_obj.get("code")
    else:
        message = str(error_obj)
        code = None

    try:
        status = int(code) if code is not None else None
    except (TypeError, ValueError):
        status = None

    if status == 429 or looks_like_rate_limit(message):
        raise LLMRateLimit(f"Rate limit reported by provider: {message}", status_code=429)
    if status is not None and status >= 500:
        raise LLMServerError(f"Provider error {status}: {message}", status_code=status)
    raise LLMClientError(f"API returned error: {message}", status_code=status)


def adapt_chat_completions_response(response_data: dict[str, Any]) -> LLMResponse:
    """Adapt an OpenAI-style chat_completions response to LLMResponse.

    Args:
        response_data: Raw response from the chat_completions API.

    Returns:
        Normalized LLMResponse structure.

    Raises:
        LLMInvalidResponse: If response format is invalid or unexpected.
    """
    raise_for_error_body(response_data)
    try:
        choices = response_data.get("choices") or []
        if not choices:
            raise LLMInvalidResponse("Response has no choices")

        choice = choices[0]
        message = choice.get("message") or {}
        content = message.get("content") or ""
        if isinstance(content, list):
            # Some providers return content parts
            content = "".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )

        usage = response_data.get("usage") or {
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "total_tokens": 0,
        }

        return LLMResponse(
            role=message.get("role", "assistant"),
            content=str(content),
            model=str(response_data.get("model", "")),
            usage=usage,
            finish_reason=choice.get("finish_reason"),
            raw=response_data,
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise LLMInvalidResponse(f"Invalid response format: {e}") from e


def build_chat_completions_request(
    messages: list[dict[str, Any]],
    model: str,
    max_tokens: int | None = None,
    temperature: float | None = None,
    response_format: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a chat_completions API request payload.

    Args:
        messages: List of message dicts with role and content.
        model: Model identifier.
        max_tokens: Maximum tokens to generate.
        temperature: Sampling temperature.
        response_format: Optional structured output constraints (OpenAI-compatible).

    Returns:
        Request payload dictionary.
    """
    payload: dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": msg.get("role", "user"), "content": msg.get("content") or ""}
            for msg in messages
        ],
    }

    if max_tokens is not None:
        payload["max_tokens"] = max_tokens

    if temperature is not None:
        payload["temperature"] = temperature

    if response_format is not None:
        payload["response_format"] = response_format

    return payload
