"""Inference client for OpenAI-compatible chat completion providers.

The client performs exactly one HTTP call per `complete()` and classifies the
outcome into the LLMClientError hierarchy. Retrying and switching models is
the rotation guard's job (see rotation.py).
"""

import time
from typing import Any

import httpx

from admin_agent.llm_client.adapters import (
    adapt_chat_completions_response,
    build_chat_completions_request,
    looks_like_rate_limit,
)
from admin_agent.llm_client.types import (
    LLMClientError,
    LLMConnectionError,
    LLMInvalidResponse,
    LLMRateLimit,
    LLMResponse,
    LLMServerError,
    LLMTimeout,
)
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import (
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_STARTED,
)
from admin_agent.telemetry.trace import TraceContext

log = get_logger(__name__)


class InferenceClient:
    """Client for a chat completions provider (OpenRouter, LM Studio, vLLM, ...).

    Attributes:
        base_url: Base URL for the API (e.g., "https://openrouter.ai/api/v1").
        api_key: Optional bearer token.
        timeout_seconds: Default read timeout.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL for the API. If None, uses settings.llm_base_url.
            api_key: Bearer token. If None, uses settings.llm_api_key.
            timeout_seconds: Default timeout. If None, uses settings.llm_timeout_seconds.
        """
        from admin_agent.config import settings  # noqa: PLC0415

        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds

    @property
    def endpoint(self) -> str:
        """Chat completions URL derived from the base URL."""
        if self.base_url.endswith("/v1"):
            return f"{self.base_url}/chat/completions"
        if self.base_url.endswith("/chat/completions"):
            return self.base_url
        return f"{self.base_url}/v1/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def complete(
        self,
        model_id: str,
        messages: list[dict[str, Any]],
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        response_format: dict[str, Any] | None = None,
        timeout_s: float | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> LLMResponse:
        """Make a single chat completion call against one model.

        Args:
            model_id: Provider model identifier.
            messages: List of message dicts with role and content.
            system_prompt: Optional system prompt (prepended to messages).
            max_tokens: Token budget for the completion.
            temperature: Sampling temperature.
            response_format: Optional structured output constraints.
            timeout_s: Read timeout override.
            trace_ctx: Trace context for telemetry correlation.

        Returns:
            LLMResponse with normalized structure.

        Raises:
            LLMTimeout: If request times out.
            LLMConnectionError: If connection fails.
            LLMRateLimit: If the provider rate-limits this model.
            LLMServerError: If the provider returns 5xx.
            LLMInvalidResponse: If response format is invalid.
            LLMClientError: For other 4xx responses.
        """
        if trace_ctx is None:
            trace_ctx = TraceContext.new_trace()
        read_timeout = float(timeout_s or self.timeout_seconds)

        request_messages = list(messages)
        if system_prompt:
            request_messages.insert(0, {"role": "system", "content": system_prompt})

        payload = build_chat_completions_request(
            messages=request_messages,
            model=model_id,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format=response_format,
        )

        start_time = time.monotonic()
        _, span_id = trace_ctx.new_span()
        log.info(
            MODEL_CALL_STARTED,
            model_id=model_id,
            message_count=len(request_messages),
            span_id=span_id,
            **trace_ctx.log_fields(),
        )

        timeout_config = httpx.Timeout(connect=10.0, read=read_timeout, write=10.0, pool=10.0)
        try:
            async with httpx.AsyncClient(timeout=timeout_config) as client:
                response = await client.post(self.endpoint, json=payload, headers=self._headers())
                response.raise_for_status()
                llm_response = adapt_chat_completions_response(response.json())
        except httpx.TimeoutException:
            error: LLMClientError = LLMTimeout(
                f"Request to {model_id} timed out after {read_timeout}s"
            )
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text[:500]
            if status == 429 or looks_like_rate_limit(body):
                error = LLMRateLimit(f"Rate limit exceeded for {model_id}: {body}", status_code=429)
            elif status >= 500:
                error = LLMServerError(f"Server error {status}: {body}", status_code=status)
            else:
                error = LLMClientError(f"HTTP error {status}: {body}", status_code=status)
        except httpx.ConnectError as e:
            error = LLMConnectionError(f"Failed to connect to {self.endpoint}: {e}")
        except httpx.RequestError as e:
            error = LLMConnectionError(f"Request error: {e}")
        except LLMClientError as e:
            error = e
        except ValueError as e:
            error = LLMInvalidResponse(f"Response is not valid JSON: {e}")
        else:
            log.info(
                MODEL_CALL_COMPLETED,
                model_id=model_id,
                latency_ms=int((time.monotonic() - start_time) * 1000),
                prompt_tokens=llm_response["usage"].get("prompt_tokens", 0),
                completion_tokens=llm_response["usage"].get("completion_tokens", 0),
                span_id=span_id,
                **trace_ctx.log_fields(),
            )
            if not llm_response["model"]:
                llm_response["model"] = model_id
            return llm_response

        log.warning(
            MODEL_CALL_ERROR,
            model_id=model_id,
            error_type=type(error).__name__,
            error=str(error)[:300],
            latency_ms=int((time.monotonic() - start_time) * 1000),
            span_id=span_id,
            **trace_ctx.log_fields(),
        )
        raise error
