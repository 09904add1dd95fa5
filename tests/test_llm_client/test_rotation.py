"""Tests for ModelRotationGuard."""

from typing import Any
from unittest.mock import AsyncMock

import pytest

from admin_agent.errors import ProvidersExhausted
from admin_agent.llm_client.models import ModelConfig, StageDefinition
from admin_agent.llm_client.rotation import ModelRotationGuard, is_rate_limit_error
from admin_agent.llm_client.types import (
    LLMClientError,
    LLMRateLimit,
    LLMResponse,
    LLMServerError,
    PipelineStage,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _response(model_id: str, content: str = "ok") -> LLMResponse:
    return LLMResponse(
        role="assistant", content=content, model=model_id, usage={}, finish_reason="stop", raw={}
    )


def _guard(clock: FakeClock, **kwargs: Any) -> ModelRotationGuard:
    config = ModelConfig(
        stages={
            "response_generation": StageDefinition(candidates=["a", "b"], max_tokens=321),
            "tool_planning": StageDefinition(candidates=["p"]),
        },
        fallback_models=["c"],
    )
    return ModelRotationGuard(config=config, clock=clock, sleep=AsyncMock(), **kwargs)


class TestCandidates:
    """Test candidate ordering and cooldowns."""

    def test_configured_order_with_fallbacks(self) -> None:
        """Stage candidates come first, then shared fallbacks."""
        guard = _guard(FakeClock())
        assert guard.candidates_for(PipelineStage.RESPONSE_GENERATION) == ["a", "b", "c"]
        assert guard.candidates_for("tool_planning") == ["p", "c"]

    def test_rate_limited_model_is_excluded(self) -> None:
        """A model on cooldown is skipped until the cooldown passes."""
        clock = FakeClock()
        guard = _guard(clock, cooldown_base_seconds=60)

        cooldown = guard.mark_rate_limited("a")

        assert cooldown == 60
        assert guard.candidates_for("response_generation") == ["b", "c"]
        clock.now += 61
        assert guard.candidates_for("response_generation") == ["a", "b", "c"]

    def test_threshold_and_exponential_cooldown(self) -> None:
        """Cooldown starts at the threshold and doubles up to the cap."""
        guard = _guard(
            FakeClock(),
            rate_limit_threshold=2,
            cooldown_base_seconds=10,
            cooldown_max_seconds=25,
        )

        assert guard.mark_rate_limited("a") == 0
        assert "a" in guard.candidates_for("response_generation")
        assert guard.mark_rate_limited("a") == 10
        assert guard.mark_rate_limited("a") == 20
        assert guard.mark_rate_limited("a") == 25

    def test_success_promotes_and_clears(self) -> None:
        """A successful model moves to the front and leaves cooldown."""
        clock = FakeClock()
        guard = _guard(clock)
        guard.mark_rate_limited("b")

        guard.mark_success("b")

        assert guard.candidates_for("response_generation") == ["b", "a", "c"]
        assert guard.cooldown_remaining("b") == 0

    def test_failure_drops_promotion(self) -> None:
        """A non-rate-limit failure removes the promotion without a cooldown."""
        guard = _guard(FakeClock())
        guard.mark_success("c")
        guard.mark_failure("c")
        assert guard.candidates_for("response_generation") == ["a", "b", "c"]

    def test_reset_forgets_health(self) -> None:
        """reset() clears cooldowns and promotions."""
        guard = _guard(FakeClock(), cooldown_base_seconds=60)
        guard.mark_rate_limited("a")
        guard.mark_success("b")

        guard.reset()

        assert guard.candidates_for("response_generation") == ["a", "b", "c"]
        assert guard.cooldown_remaining("a") == 0


class TestExecute:
    """Test execution with rotation."""

    @pytest.mark.asyncio
    async def test_rotates_past_rate_limit(self) -> None:
        """A rate-limited candidate is skipped for the next one."""
        guard = _guard(FakeClock())
        tried: list[str] = []

        async def call(model_id: str) -> LLMResponse:
            tried.append(model_id)
            if model_id == "a":
                raise LLMRateLimit("429", status_code=429)
            return _response(model_id)

        result = await guard.execute("response_generation", call)

        assert result["model"] == "b"
        assert tried == ["a", "b"]
        assert guard.candidates_for("response_generation")[0] == "b"
        assert "a" not in guard.candidates_for("response_generation")

    @pytest.mark.asyncio
    async def test_server_error_retries_same_model(self) -> None:
        """Transient server errors are retried on the same model with backoff."""
        guard = _guard(FakeClock(), max_retries=2)
        calls = {"n": 0}

        async def call(model_id: str) -> LLMResponse:
            calls["n"] += 1
            if calls["n"] < 3:
                raise LLMServerError("502", status_code=502)
            return _response(model_id)

        result = await guard.execute("response_generation", call)

        assert result["model"] == "a"
        assert calls["n"] == 3
        assert guard._sleep.await_count == 2  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_all_rate_limited_raises_exhausted(self) -> None:
        """Every candidate rate-limited raises ProvidersExhausted listing attempts."""
        guard = _guard(FakeClock())

        async def call(model_id: str) -> LLMResponse:
            raise LLMRateLimit(f"{model_id} rate limit exceeded", status_code=429)

        with pytest.raises(ProvidersExhausted) as exc_info:
            await guard.execute("response_generation", call)

        assert exc_info.value.stage == "response_generation"
        assert [model for model, _ in exc_info.value.attempts] == ["a", "b", "c"]
        assert guard.candidates_for("response_generation") == []

    @pytest.mark.asyncio
    async def test_no_candidates_raises_exhausted(self) -> None:
        """A stage with nothing usable fails fast."""
        guard = ModelRotationGuard(config=ModelConfig(fallback_models=[]), sleep=AsyncMock())

        with pytest.raises(ProvidersExhausted):
            await guard.execute("step_evaluation", AsyncMock())

    @pytest.mark.asyncio
    async def test_pacing_sleeps_between_calls(self) -> None:
        """Calls closer together than the minimum delay are paced."""
        guard = _guard(FakeClock(), min_delay_ms=1000)

        async def call(model_id: str) -> LLMResponse:
            return _response(model_id)

        await guard.execute("response_generation", call)
        await guard.execute("response_generation", call)

        assert guard._sleep.await_count == 1  # type: ignore[attr-defined]
        assert guard._sleep.await_args.args[0] > 0  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_complete_uses_stage_budget(self) -> None:
        """complete() forwards the stage's token budget to the client."""
        guard = _guard(FakeClock())
        client = AsyncMock()
        client.complete = AsyncMock(return_value=_response("a", "done"))

        result = await guard.complete(
            PipelineStage.RESPONSE_GENERATION,
            client,
            [{"role": "user", "content": "hi"}],
            system_prompt="sys",
        )

        assert result["content"] == "done"
        kwargs = client.complete.call_args.kwargs
        assert kwargs["model_id"] == "a"
        assert kwargs["max_tokens"] == 321
        assert kwargs["system_prompt"] == "sys"


def test_is_rate_limit_error() -> None:
    """429 status codes and rate-limit wording both count."""
    assert is_rate_limit_error(LLMRateLimit("x"))
    assert is_rate_limit_error(LLMClientError("x", status_code=429))
    assert is_rate_limit_error(LLMClientError("Quota exceeded"))
    assert not is_rate_limit_error(LLMClientError("bad request", status_code=400))
