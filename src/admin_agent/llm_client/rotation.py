"""Model rotation and rate-limit guard.

Each pipeline stage has an ordered list of candidate models. A rate-limited
model is put on an exponentially growing cooldown and the call moves on to
the next candidate; a successful call clears the cooldown and promotes the
model to the front of the stage's order. The health table is copy-on-write:
every mutation builds a new mapping and swaps the reference, so readers never
observe a half-updated table.
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any, TypeVar

from admin_agent.errors import ProvidersExhausted
from admin_agent.llm_client.adapters import looks_like_rate_limit
from admin_agent.llm_client.models import ModelConfig
from admin_agent.llm_client.types import (
    LLMClientError,
    LLMRateLimit,
    LLMResponse,
    LLMServerError,
    LLMTimeout,
    PipelineStage,
)
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import (
    MODEL_COOLDOWN_STARTED,
    MODEL_PROMOTED,
    MODEL_ROTATED,
    PROVIDERS_EXHAUSTED,
)
from admin_agent.telemetry.trace import TraceContext

log = get_logger(__name__)

T = TypeVar("T")

_MIN_PACING_SECONDS = 0.1
_PACING_JITTER = 0.2


@dataclass(frozen=True)
class ModelCandidate:
    """Health record for one model id.

    Attributes:
        id: Provider model identifier.
        cooldown_until: Clock value until which the model is skipped.
        failures: Consecutive rate-limit failures.
        last_success: Clock value of the last successful call (0 if never).
    """

    id: str
    cooldown_until: float = 0.0
    failures: int = 0
    last_success: float = 0.0

    def is_cooling(self, now: float) -> bool:
        """Return True while the model is on cooldown."""
        return self.cooldown_until > now


def is_rate_limit_error(error: BaseException) -> bool:
    """Return True if an exception signals a 429-equivalent condition."""
    if isinstance(error, LLMRateLimit):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    return looks_like_rate_limit(str(error))


class ModelRotationGuard:
    """Per-stage candidate selection with cooldowns, retries, and pacing.

    Attributes:
        config: Stage candidate configuration.
        rate_limit_threshold: Consecutive rate limits before a model cools down.
        cooldown_base_seconds: Cooldown after reaching the threshold.
        cooldown_max_seconds: Upper bound for any cooldown.
        max_retries: Same-model retries for transient server errors and timeouts.
    """

    def __init__(
        self,
        config: ModelConfig | None = None,
        rate_limit_threshold: int = 1,
        cooldown_base_seconds: float = 60.0,
        cooldown_max_seconds: float = 300.0,
        backoff_base_seconds: float = 1.0,
        backoff_max_seconds: float = 8.0,
        max_retries: int = 2,
        min_delay_ms: int = 0,
        rate_limit_delay_ms: int = 0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or ModelConfig()
        self.rate_limit_threshold = max(1, rate_limit_threshold)
        self.cooldown_base_seconds = cooldown_base_seconds
        self.cooldown_max_seconds = cooldown_max_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.max_retries = max_retries
        self.min_delay_ms = min_delay_ms
        self.rate_limit_delay_ms = rate_limit_delay_ms
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._table: Mapping[str, ModelCandidate] = {}
        self._last_call_at: float | None = None
        self._last_was_rate_limited = False

    # ------------------------------------------------------------------
    # Health table
    # ------------------------------------------------------------------

    def _candidate(self, model_id: str) -> ModelCandidate:
        return self._table.get(model_id) or ModelCandidate(id=model_id)

    def _swap(self, candidate: ModelCandidate) -> None:
        table = dict(self._table)
        table[candidate.id] = candidate
        self._table = table

    def candidates_for(self, stage: PipelineStage | str) -> list[str]:
        """Return usable candidates for a stage, most recently successful first.

        Models on cooldown are excluded. Models that never succeeded keep their
        configured order after the ones that did.
        """
        stage_name = stage.value if isinstance(stage, PipelineStage) else stage
        now = self._clock()
        table = self._table
        usable = [
            table.get(model_id) or ModelCandidate(id=model_id)
            for model_id in self.config.candidates_for(stage_name)
        ]
        usable = [c for c in usable if not c.is_cooling(now)]
        usable.sort(key=lambda c: -c.last_success)
        return [c.id for c in usable]

    def cooldown_remaining(self, model_id: str) -> float:
        """Seconds until a model leaves cooldown (0 if healthy)."""
        return max(0.0, self._candidate(model_id).cooldown_until - self._clock())

    def mark_rate_limited(self, model_id: str) -> float:
        """Record a rate-limit failure and start a cooldown once the threshold is hit.

        Returns:
            Cooldown length in seconds (0 if the threshold is not reached yet).
        """
        current = self._candidate(model_id)
        failures = current.failures + 1
        cooldown = 0.0
        if failures >= self.rate_limit_threshold:
            exponent = failures - self.rate_limit_threshold
            cooldown = min(self.cooldown_max_seconds, self.cooldown_base_seconds * (2**exponent))
        self._swap(
            replace(
                current,
                failures=failures,
                cooldown_until=self._clock() + cooldown if cooldown else current.cooldown_until,
            )
        )
        if cooldown:
            log.warning(
                MODEL_COOLDOWN_STARTED,
                model_id=model_id,
                failures=failures,
                cooldown_seconds=cooldown,
            )
        return cooldown

    def mark_failure(self, model_id: str) -> None:
        """Record a non-rate-limit failure: the model loses its promotion but does not cool down."""
        current = self._candidate(model_id)
        self._swap(replace(current, last_success=0.0))

    def mark_success(self, model_id: str) -> None:
        """Clear cooldown and failures, and promote the model."""
        current = self._candidate(model_id)
        self._swap(ModelCandidate(id=model_id, last_success=self._clock()))
        if current.failures or current.cooldown_until:
            log.info(MODEL_PROMOTED, model_id=model_id, previous_failures=current.failures)

    def reset(self) -> None:
        """Forget all health records."""
        self._table = {}
        self._last_call_at = None
        self._last_was_rate_limited = False

    # ------------------------------------------------------------------
    # Pacing and backoff
    # ------------------------------------------------------------------

    def _jittered(self, seconds: float) -> float:
        factor = 1 + self._rng.uniform(-_PACING_JITTER, _PACING_JITTER)
        return max(_MIN_PACING_SECONDS, seconds * factor)

    def backoff_delay(self, attempt: int) -> float:
        """Capped exponential backoff with jitter for same-model retries."""
        base = self.backoff_base_seconds * (2**attempt)
        delay = base * (1 + self._rng.uniform(-_PACING_JITTER, _PACING_JITTER))
        return max(0.0, min(self.backoff_max_seconds, delay))

    async def _pace(self) -> None:
        delay_ms = self.rate_limit_delay_ms if self._last_was_rate_limited else self.min_delay_ms
        if delay_ms <= 0 or self._last_call_at is None:
            self._last_call_at = self._clock()
            return
        target = self._jittered(delay_ms / 1000.0)
        elapsed = self._clock() - self._last_call_at
        if elapsed < target:
            await self._sleep(target - elapsed)
        self._last_call_at = self._clock()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        stage: PipelineStage | str,
        call: Callable[[str], Awaitable[T]],
        trace_ctx: TraceContext | None = None,
    ) -> T:
        """Run `call(model_id)` against the stage's candidates until one succeeds.

        Args:
            stage: Pipeline stage.
            call: Coroutine factory receiving the model id.
            trace_ctx: Trace context for log correlation.

        Returns:
            The first successful result.

        Raises:
            ProvidersExhausted: If every candidate failed or none is available.
        """
        stage_name = stage.value if isinstance(stage, PipelineStage) else stage
        log_fields = trace_ctx.log_fields() if trace_ctx else {}
        attempts: list[tuple[str, str]] = []

        for model_id in self.candidates_for(stage_name):
            retry = 0
            while True:
                await self._pace()
                try:
                    result = await call(model_id)
                except LLMClientError as e:
                    if is_rate_limit_error(e):
                        self._last_was_rate_limited = True
                        self.mark_rate_limited(model_id)
                        attempts.append((model_id, str(e)))
                        break
                    self._last_was_rate_limited = False
                    if isinstance(e, (LLMServerError, LLMTimeout)) and retry < self.max_retries:
                        delay = self.backoff_delay(retry)
                        log.info(
                            "model_call_retry",
                            stage=stage_name,
                            model_id=model_id,
                            attempt=retry + 1,
                            wait_seconds=round(delay, 2),
                            **log_fields,
                        )
                        await self._sleep(delay)
                        retry += 1
                        continue
                    self.mark_failure(model_id)
                    attempts.append((model_id, str(e)))
                    break
                else:
                    self._last_was_rate_limited = False
                    self.mark_success(model_id)
                    return result

            log.info(
                MODEL_ROTATED,
                stage=stage_name,
                from_model=model_id,
                reason=attempts[-1][1][:200],
                **log_fields,
            )

        log.error(
            PROVIDERS_EXHAUSTED,
            stage=stage_name,
            tried=[model for model, _ in attempts],
            **log_fields,
        )
        raise ProvidersExhausted(stage_name, attempts)

    async def complete(
        self,
        stage: PipelineStage | str,
        client: Any,
        messages: list[dict[str, Any]],
        system_prompt: str | None = None,
        response_format: dict[str, Any] | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> LLMResponse:
        """Request a completion for a stage using the stage's token budget.

        Args:
            stage: Pipeline stage.
            client: InferenceClient (anything with a compatible `complete`).
            messages: Conversation messages.
            system_prompt: Optional system prompt.
            response_format: Optional structured output constraints.
            trace_ctx: Trace context for log correlation.

        Returns:
            The completion from the first model that answered.

        Raises:
            ProvidersExhausted: If every candidate failed.
        """
        stage_name = stage.value if isinstance(stage, PipelineStage) else stage
        definition = self.config.stage(stage_name)

        async def _call(model_id: str) -> LLMResponse:
            return await client.complete(
                model_id=model_id,
                messages=messages,
                system_prompt=system_prompt,
                max_tokens=definition.max_tokens,
                temperature=definition.temperature,
                response_format=response_format,
                timeout_s=definition.timeout_seconds,
                trace_ctx=trace_ctx,
            )

        return await self.execute(stage_name, _call, trace_ctx=trace_ctx)


_guard: ModelRotationGuard | None = None


def build_rotation_guard() -> ModelRotationGuard:
    """Create a guard from settings and config/models.yaml."""
    from admin_agent.config import ModelConfigError, load_model_config, settings  # noqa: PLC0415

    try:
        config = load_model_config()
    except ModelConfigError as e:
        log.warning("model_config_load_failed", error=str(e), using_defaults=True)
        config = ModelConfig()

    return ModelRotationGuard(
        config=config,
        rate_limit_threshold=settings.rotation_rate_limit_threshold,
        cooldown_base_seconds=settings.rotation_cooldown_base_seconds,
        cooldown_max_seconds=settings.rotation_cooldown_max_seconds,
        backoff_base_seconds=settings.rotation_backoff_base_seconds,
        backoff_max_seconds=settings.rotation_backoff_max_seconds,
        max_retries=settings.llm_max_retries,
        min_delay_ms=settings.rotation_min_delay_ms,
        rate_limit_delay_ms=settings.rotation_rate_limit_delay_ms,
    )


def get_rotation_guard() -> ModelRotationGuard:
    """Get the process-wide guard (created on first use)."""
    global _guard
    if _guard is None:
        _guard = build_rotation_guard()
    return _guard
