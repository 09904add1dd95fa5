"""Core types for the orchestrator.

This module defines the data structures used throughout the orchestrator:
- RouteMode / RoutingPlan: Router output
- ExecutionStep / StepResult: Plan steps and their outcomes
- RunStatus / SuspendPayload / RunState: Durable suspend/resume state machine
- Activation / AgentResponse: What the caller gets back
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator
from typing_extensions import TypedDict

from admin_agent.tools.types import AdminRequest, ToolResult


class RouteMode(str, Enum):
    """Processing modes chosen by the intent router."""

    CHAT = "chat"
    RECIPE = "recipe"
    HITL = "hitl"
    TOOL = "tool"
    RAG = "rag"


class RoutingPlan(TypedDict):
    """Router decision.

    Fields:
        mode: Processing mode.
        reason: Which rule fired.
        recipe: Recipe name when mode is RECIPE.
        confidence: Heuristic confidence (0.0-1.0).
    """

    mode: RouteMode
    reason: str
    recipe: str | None
    confidence: float


class StepMethod(str, Enum):
    """Execution step kinds."""

    API = "api"
    SERVICE = "service"
    GRAPH = "graph"
    JAVASCRIPT = "javascript"


# Step method names that run as constrained expressions.
EXPRESSION_ALIASES = frozenset(
    {"javascript", "transform", "filter", "map", "format", "aggregate", "destructure", "return"}
)


class ExecutionStep(BaseModel):
    """One unit of a plan. Steps are numbered from 1 and strictly increase."""

    step: int = Field(..., ge=1)
    action: str = ""
    method: str = StepMethod.API.value
    code: str = ""


class StepResult(BaseModel):
    """Outcome of one ExecutionStep. Failed steps stay in the trace."""

    step: int
    action: str = ""
    method: str = ""
    success: bool
    data: Any = None
    error: str | None = None


class RunStatus(str, Enum):
    """Run lifecycle states."""

    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"


class SuspendOption(TypedDict, total=False):
    """One choice offered to the operator."""

    id: str
    label: str
    metadata: dict[str, Any]


class SuspendPayload(BaseModel):
    """What a suspended run asks of the operator.

    Attributes:
        kind: "select" (pick one option) or "confirm_write" (approve a held write).
        reason: Human prompt, e.g. "Found 3 customers. Please select one:".
        options: Choices; a "select" payload carries at least two.
        actions: Extra actions the UI may offer (e.g. view-all).
        total_count: Total matches before truncation to options.
    """

    kind: Literal["select", "confirm_write"] = "select"
    reason: str
    options: list[SuspendOption] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0

    @model_validator(mode="after")
    def _enough_options(self) -> "SuspendPayload":
        if self.kind == "select" and len(self.options) < 2:
            raise ValueError("A selection payload needs at least two options")
        return self


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunState(BaseModel):
    """Serializable state of one multi-step run.

    Persisted with model_dump(mode="json") and rebuilt with model_validate on
    resume; nothing here refers to in-memory call frames.
    """

    run_id: str
    mode: RouteMode
    message: str
    status: RunStatus = RunStatus.RUNNING
    steps: list[StepResult] = Field(default_factory=list)
    suspend_payload: SuspendPayload | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _suspended_has_payload(self) -> "RunState":
        if self.status == RunStatus.SUSPENDED and self.suspend_payload is None:
            raise ValueError("A suspended run must carry a suspend payload")
        numbers = [s.step for s in self.steps]
        if any(b <= a for a, b in zip(numbers, numbers[1:])):
            raise ValueError("Step numbers must strictly increase")
        return self

    @property
    def is_terminal(self) -> bool:
        """True once the run completed or failed."""
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)

    @property
    def next_step(self) -> int:
        """Number for the next recorded step."""
        return (self.steps[-1].step + 1) if self.steps else 1


class Activation(TypedDict):
    """One entry of the activation trace returned to the caller."""

    name: str
    arguments: dict[str, Any]
    result: Any


class AgentResponse(BaseModel):
    """Response to trigger and resume.

    Either {status: completed, reply, activations[]} or
    {status: suspended, run_id, suspend_payload}.
    """

    status: Literal["completed", "suspended"]
    reply: str | None = None
    activations: list[Activation] = Field(default_factory=list)
    run_id: str | None = None
    suspend_payload: SuspendPayload | None = None
    trace_id: str | None = None

    @classmethod
    def completed(
        cls,
        reply: str,
        activations: list[Activation] | None = None,
        run_id: str | None = None,
        trace_id: str | None = None,
    ) -> "AgentResponse":
        """Build a completed response."""
        return cls(
            status="completed",
            reply=reply,
            activations=activations or [],
            run_id=run_id,
            trace_id=trace_id,
        )

    @classmethod
    def suspended(
        cls,
        run_id: str,
        payload: SuspendPayload,
        activations: list[Activation] | None = None,
        trace_id: str | None = None,
    ) -> "AgentResponse":
        """Build a suspended response."""
        return cls(
            status="suspended",
            run_id=run_id,
            suspend_payload=payload,
            activations=activations or [],
            trace_id=trace_id,
        )


@dataclass
class ToolLoopResult:
    """Outcome of one reasoning/acting loop.

    Attributes:
        reply: Final model text (may be empty when the loop ran out of rounds).
        results: Executed GET calls in order.
        pending_writes: Write requests proposed but not executed.
        rejected: Proposed requests the catalog refused, as "METHOD /path" strings.
        rounds: Number of model rounds used.
    """

    reply: str = ""
    results: list[ToolResult] = field(default_factory=list)
    pending_writes: list[AdminRequest] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    rounds: int = 0

    def activations(self) -> list[Activation]:
        """Render executed calls as activation entries."""
        return [
            Activation(
                name=result.tool_name,
                arguments=result.request.model_dump(),
                result={"status": result.status_code, "error": result.error},
            )
            for result in self.results
        ]


@dataclass
class PlanResult:
    """Outcome of executing a list of ExecutionSteps.

    Attributes:
        steps: One StepResult per step, failures included.
        data: Output of the last successful step.
    """

    steps: list[StepResult] = field(default_factory=list)
    data: Any = None

    @property
    def errors(self) -> list[str]:
        """Error lines for failed steps ("Step N: ...")."""
        return [f"Step {s.step}: {s.error}" for s in self.steps if not s.success]

    def activations(self) -> list[Activation]:
        """Render steps as activation entries."""
        return [
            Activation(
                name=f"step_{s.step}",
                arguments={"action": s.action, "method": s.method},
                result={"success": s.success, "error": s.error},
            )
            for s in self.steps
        ]
