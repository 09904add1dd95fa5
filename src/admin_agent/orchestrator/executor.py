"""Action executor: the bounded reasoning/acting loop and plan execution.

run_tool_loop() asks the planning model for admin API calls, validates every
proposed request against the endpoint catalog, executes GETs with the caller's
own credentials, and feeds a compact observation back to the model until it
answers in plain text or the round bound is hit. Write requests are never
executed here; they come back as pending_writes for the confirmation path.

execute_plan() runs a fixed list of ExecutionSteps (api, service, graph and
expression steps). A failing step is recorded and the plan continues with the
last successful result.
"""

import ast
import inspect
import re
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import parse_qsl

import orjson

from admin_agent.catalog.index import CatalogIndex, Endpoint, path_segments
from admin_agent.catalog.source import CatalogCache
from admin_agent.catalog.validator import DEFAULT_POLICY, CorrectionPolicy, validate_request
from admin_agent.errors import (
    AgentError,
    ExecutionError,
    NotFoundError,
    ProvidersExhausted,
    UnsupportedOperation,
    ValidationError,
)
from admin_agent.llm_client.tool_call_parser import (
    ADMIN_API_TOOL,
    infer_tool_calls_from_message,
    parse_tool_calls,
)
from admin_agent.llm_client.types import PipelineStage, ToolCall
from admin_agent.orchestrator.expressions import evaluate_expression
from admin_agent.orchestrator.lookup import find_resource
from admin_agent.orchestrator.prompts import build_tool_planning_prompt
from admin_agent.orchestrator.shaping import extract_items, record_label, total_count
from admin_agent.orchestrator.types import (
    EXPRESSION_ALIASES,
    ExecutionStep,
    PlanResult,
    StepMethod,
    StepResult,
    ToolLoopResult,
)
from admin_agent.services.registry import ServiceRegistry, get_registry_cache
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import (
    STEP_EXECUTED,
    STEP_FAILED,
    STEP_STARTED,
    TOOL_LOOP_FINISHED,
    TOOL_LOOP_ROUND,
    WRITE_DEFERRED,
)
from admin_agent.telemetry.trace import TraceContext
from admin_agent.tools.admin_api import AdminApiClient, admin_api_tool
from admin_agent.tools.types import AdminRequest, AuthContext, ToolResult

log = get_logger(__name__)

MIN_TOOL_LOOPS = 1
MAX_TOOL_LOOPS = 6
PREVIEW_ITEMS = 10

_TOOL_NAMES = frozenset({ADMIN_API_TOOL, "admin_api", "api_request"})
_API_STEP_RE = re.compile(
    r"^\s*(GET|POST|PUT|PATCH|DELETE)\s+(\S+)(?:\s+([\[{][\s\S]*))?\s*$", re.IGNORECASE
)
_SERVICE_CALL_RE = re.compile(r"await\s+([A-Za-z_]\w*)\.([A-Za-z_]\w*)\(([\s\S]*)\)")
_GRAPH_RE = re.compile(r"query\.graph\(\s*(\{[\s\S]*\})\s*\)")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][\w$]*)\s*:")
_JS_CONSTANTS = (
    (re.compile(r"\btrue\b"), "True"),
    (re.compile(r"\bfalse\b"), "False"),
    (re.compile(r"\b(?:null|undefined)\b"), "None"),
)
_LIST_ALL_RE = re.compile(r"\b(?:list|show|get|fetch)\s+(?:me\s+)?all\b", re.IGNORECASE)


# ============================================================================
# Request shaping
# ============================================================================


def _as_mapping(value: Any, field: str) -> dict[str, Any]:
    if value is None or value == "":
        return {}
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{"):
            try:
                decoded = orjson.loads(text)
            except orjson.JSONDecodeError:
                raise ValidationError(f"{field} is not valid JSON") from None
            if isinstance(decoded, dict):
                return decoded
        return dict(parse_qsl(text.lstrip("?"), keep_blank_values=True))
    raise ValidationError(f"{field} must be an object")


def request_from_arguments(arguments: dict[str, Any]) -> AdminRequest:
    """Build a concrete request from admin_api_request arguments.

    A query string inside the path is moved into `query`, and filters a model
    put in the body of a GET are folded into the query.

    Raises:
        ValidationError: If method or path is missing or malformed.
    """
    method = arguments.get("method") or "GET"
    path = arguments.get("path") or arguments.get("endpoint")
    if not isinstance(method, str) or not isinstance(path, str) or not path.strip():
        raise ValidationError("admin_api_request needs a string method and path")

    query = _as_mapping(arguments.get("query") or arguments.get("params"), "query")
    body_raw = arguments.get("body") if "body" in arguments else arguments.get("data")
    body = _as_mapping(body_raw, "body") if body_raw not in (None, "") else None

    path = path.strip()
    if "?" in path:
        path, query_string = path.split("?", 1)
        query = {**dict(parse_qsl(query_string, keep_blank_values=True)), **query}

    request = AdminRequest(method=method, path=path, query=query, body=body)
    if request.method == "GET" and request.body:
        request = request.model_copy(update={"query": {**request.body, **request.query}, "body": None})
    return request


def normalize_write_request(request: AdminRequest) -> AdminRequest:
    """Writes carry their fields in the body; move a query-only payload there."""
    if request.is_write and not request.body and request.query:
        return request.model_copy(update={"body": dict(request.query), "query": {}})
    return request


def with_default_list_limit(request: AdminRequest, limit: int) -> AdminRequest:
    """Add a limit to a bare collection GET ("/admin/orders")."""
    segments = path_segments(request.path)
    if request.method != "GET" or len(segments) != 2 or segments[0] != "admin":
        return request
    if "limit" in request.query:
        return request
    return request.model_copy(update={"query": {**request.query, "limit": limit}})


def build_list_preview(output: Any, max_items: int = PREVIEW_ITEMS) -> str:
    """Short "id · label · status" preview of a list payload, or ""."""
    _, items = extract_items(output)
    if not items:
        return ""
    lines = [f"Preview ({min(len(items), max_items)} of {total_count(output, items)}):"]
    for item in items[:max_items]:
        if not isinstance(item, dict):
            lines.append(f"- {item}")
            continue
        parts = [str(item.get("id", "?")), record_label(item)]
        if item.get("status"):
            parts.append(str(item["status"]))
        lines.append("- " + " · ".join(parts))
    return "\n".join(lines)


def render_observation(result: ToolResult, max_chars: int) -> str:
    """Observation fed back to the model after a call."""
    status = result.status_code if result.status_code is not None else "error"
    body = result.output if result.output is not None else {"error": result.error}
    text = orjson.dumps(body, default=str, option=orjson.OPT_NON_STR_KEYS).decode()
    if len(text) > max_chars:
        text = text[:max_chars] + "...(truncated)"
    lines = [f"Tool result: {result.request.method} {result.request.path}", f"Status: {status}"]
    preview = build_list_preview(result.output)
    if preview:
        lines.append(preview)
    lines.append(f"JSON: {text}")
    return "\n".join(lines)


# ============================================================================
# Step parsing
# ============================================================================


def parse_literal(text: str) -> Any:
    """Decode a JSON or JavaScript-style object/array literal.

    Raises:
        ValidationError: If the text is not a plain literal.
    """
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        pass
    converted = _BARE_KEY_RE.sub(r'\1"\2":', text)
    for pattern, replacement in _JS_CONSTANTS:
        converted = pattern.sub(replacement, converted)
    try:
        return ast.literal_eval(converted)
    except (ValueError, SyntaxError, MemoryError, RecursionError):
        raise ValidationError(f"Not a literal: {text[:120]}") from None


def parse_api_step(code: str) -> AdminRequest:
    """Parse "GET /admin/designs?status=approved&limit=20" (optionally with a JSON body)."""
    match = _API_STEP_RE.match(code or "")
    if not match:
        raise ValidationError(f"Cannot parse API step: {code[:120]!r}")
    method, path, body_text = match.groups()
    arguments: dict[str, Any] = {"method": method, "path": path}
    if body_text:
        body = parse_literal(body_text.strip())
        if not isinstance(body, dict):
            raise ValidationError("API step body must be an object")
        arguments["body"] = body
    return request_from_arguments(arguments)


def parse_service_call(code: str) -> tuple[str, str, list[Any]]:
    """Parse "await productService.list({...}, {...})" into (service, method, args)."""
    match = _SERVICE_CALL_RE.search(code or "")
    if not match:
        raise ValidationError(f"Cannot parse service call: {code[:120]!r}")
    service, method, args_text = match.groups()
    args_text = args_text.strip()
    if not args_text:
        return service, method, [{}, {}]
    args = parse_literal(f"[{args_text}]")
    return service, method, list(args)


def parse_graph_step(code: str) -> dict[str, Any]:
    """Parse "query.graph({ entity: 'design', fields: [...] })" into its spec."""
    match = _GRAPH_RE.search(code or "")
    if not match:
        raise ValidationError(f"Cannot parse graph query: {code[:120]!r}")
    spec = parse_literal(match.group(1))
    if not isinstance(spec, dict):
        raise ValidationError("Graph query must be an object")
    return spec


def normalize_service_result(result: Any) -> Any:
    """[items, count] -> {"items": items, "count": count}."""
    if (
        isinstance(result, (list, tuple))
        and len(result) == 2
        and isinstance(result[0], list)
        and isinstance(result[1], int)
        and not isinstance(result[1], bool)
    ):
        return {"items": result[0], "count": result[1]}
    return result


def expression_bindings(last_data: Any, previous_results: Sequence[Any]) -> dict[str, Any]:
    """Names visible to expression steps."""
    _, items = extract_items(last_data)
    return {
        "result": last_data,
        "data": last_data,
        "items": items,
        "count": total_count(last_data, items),
        "previous_results": list(previous_results),
    }


def check_step_order(steps: Sequence[ExecutionStep]) -> None:
    """Raise ValidationError unless step numbers strictly increase."""
    numbers = [step.step for step in steps]
    if any(b <= a for a, b in zip(numbers, numbers[1:])):
        raise ValidationError(f"Step numbers must strictly increase: {numbers}")


# ============================================================================
# Executor
# ============================================================================


class ActionExecutor:
    """Runs reasoning/acting loops and step plans against the admin API.

    Attributes:
        catalog: Cache owning the current endpoint catalog snapshot.
        api: Admin API client used for every backend call.
        max_tool_loops: Model rounds per loop (clamped to 1-6).
        max_tool_result_chars: Cap on the JSON part of an observation.
        max_prompt_endpoints: Cap on operations listed in the planning prompt.
        default_list_limit: Limit added to bare collection GETs.
        policy: Nearest-neighbour correction policy.
    """

    def __init__(
        self,
        catalog: CatalogCache | None = None,
        registry: ServiceRegistry | None = None,
        api: AdminApiClient | None = None,
        client: Any = None,
        guard: Any = None,
        max_tool_loops: int | None = None,
        max_tool_result_chars: int | None = None,
        max_prompt_endpoints: int | None = None,
        default_list_limit: int | None = None,
        policy: CorrectionPolicy = DEFAULT_POLICY,
        graph_runner: Callable[[dict[str, Any]], Any] | None = None,
    ) -> None:
        from admin_agent.config import settings  # noqa: PLC0415

        if catalog is None:
            from admin_agent.catalog.source import get_catalog_cache  # noqa: PLC0415

            catalog = get_catalog_cache()
        self.catalog = catalog
        self._registry = registry
        self.api = api or AdminApiClient()
        self._client = client
        self._guard = guard
        loops = max_tool_loops or settings.executor_max_tool_loops
        self.max_tool_loops = max(MIN_TOOL_LOOPS, min(MAX_TOOL_LOOPS, loops))
        self.max_tool_result_chars = (
            max_tool_result_chars or settings.executor_max_tool_result_chars
        )
        self.max_prompt_endpoints = max_prompt_endpoints or settings.executor_max_prompt_endpoints
        self.default_list_limit = default_list_limit or settings.executor_default_list_limit
        self.policy = policy
        self.graph_runner = graph_runner

    @property
    def registry(self) -> ServiceRegistry:
        """Service registry (the process-wide one unless injected)."""
        return self._registry or get_registry_cache().get()

    @property
    def client(self) -> Any:
        """Inference client, created on first use."""
        if self._client is None:
            from admin_agent.llm_client.client import InferenceClient  # noqa: PLC0415

            self._client = InferenceClient()
        return self._client

    @property
    def guard(self) -> Any:
        """Model rotation guard (the process-wide one unless injected)."""
        if self._guard is None:
            from admin_agent.llm_client.rotation import get_rotation_guard  # noqa: PLC0415

            self._guard = get_rotation_guard()
        return self._guard

    # ------------------------------------------------------------------
    # Reasoning/acting loop
    # ------------------------------------------------------------------

    def prompt_endpoints(self, index: CatalogIndex, message: str) -> list[Endpoint]:
        """Operations listed in the planning prompt: best matches first, then catalog order."""
        ranked = [endpoint for endpoint, _ in index.search(message, limit=self.max_prompt_endpoints)]
        chosen = {endpoint.key for endpoint in ranked}
        for endpoint in index.endpoints:
            if len(ranked) >= self.max_prompt_endpoints:
                break
            if endpoint.key not in chosen:
                ranked.append(endpoint)
                chosen.add(endpoint.key)
        return ranked

    def build_system_prompt(self, index: CatalogIndex, message: str) -> str:
        """Planning prompt listing only currently allowed operations."""
        return build_tool_planning_prompt(
            tool_block=admin_api_tool.render(),
            endpoints=self.prompt_endpoints(index, message),
            services_block=self.registry.prompt_listing(),
        )

    async def run_tool_loop(
        self,
        message: str,
        history: list[dict[str, Any]] | None = None,
        auth: AuthContext | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> ToolLoopResult:
        """Run the bounded reasoning/acting loop for one message.

        Explicit "GET /admin/..." requests in the message run directly without
        a model round.

        Args:
            message: Operator message.
            history: Prior conversation turns.
            auth: Caller credentials, forwarded unchanged.
            trace_ctx: Trace context for log correlation.

        Returns:
            ToolLoopResult with the final text, executed calls, deferred writes
            and rejected proposals.

        Raises:
            ProvidersExhausted: If no planning model answered before any call ran.
        """
        trace_ctx = trace_ctx or TraceContext.new_trace()
        index = await self.catalog.get()
        outcome = ToolLoopResult()
        seen: set[str] = set()

        explicit = infer_tool_calls_from_message(message)
        if explicit:
            for call in explicit:
                await self._handle_call(call, index, auth, outcome, seen, trace_ctx)
            self._log_finished(outcome, trace_ctx, explicit=True)
            return outcome

        system_prompt = self.build_system_prompt(index, message)
        messages: list[dict[str, Any]] = [*(history or []), {"role": "user", "content": message}]

        for round_number in range(1, self.max_tool_loops + 1):
            outcome.rounds = round_number
            try:
                response = await self.guard.complete(
                    PipelineStage.TOOL_PLANNING,
                    self.client,
                    messages,
                    system_prompt=system_prompt,
                    trace_ctx=trace_ctx,
                )
            except ProvidersExhausted:
                if not outcome.results:
                    raise
                log.warning("tool_loop_models_exhausted", round=round_number, **trace_ctx.log_fields())
                break

            text = response["content"] or ""
            calls = parse_tool_calls(text, trace_id=trace_ctx.trace_id)
            log.info(TOOL_LOOP_ROUND, round=round_number, calls=len(calls), **trace_ctx.log_fields())

            if not calls:
                if not outcome.results and _LIST_ALL_RE.search(message):
                    fallback = self._fallback_list_call(index, message)
                    if fallback is not None:
                        await self._handle_call(fallback, index, auth, outcome, seen, trace_ctx)
                        break
                outcome.reply = text.strip()
                break

            messages.append({"role": "assistant", "content": text})
            observations = [
                await self._handle_call(call, index, auth, outcome, seen, trace_ctx)
                for call in calls
            ]
            messages.append({"role": "user", "content": "\n\n".join(observations)})

        self._log_finished(outcome, trace_ctx)
        return outcome

    def _log_finished(self, outcome: ToolLoopResult, trace_ctx: TraceContext, explicit: bool = False) -> None:
        log.info(
            TOOL_LOOP_FINISHED,
            rounds=outcome.rounds,
            executed=len(outcome.results),
            pending_writes=len(outcome.pending_writes),
            rejected=len(outcome.rejected),
            explicit=explicit,
            **trace_ctx.log_fields(),
        )

    def _fallback_list_call(self, index: CatalogIndex, message: str) -> ToolCall | None:
        for endpoint, _ in index.search(message, method="GET", limit=5):
            if endpoint.method == "GET" and not endpoint.path_params:
                return ToolCall(
                    name=ADMIN_API_TOOL,
                    arguments={"method": "GET", "path": endpoint.declared_path or endpoint.path},
                )
        resource = find_resource(message)
        if resource is None:
            return None
        return ToolCall(name=ADMIN_API_TOOL, arguments={"method": "GET", "path": f"/admin/{resource}"})

    async def _handle_call(
        self,
        call: ToolCall,
        index: CatalogIndex,
        auth: AuthContext | None,
        outcome: ToolLoopResult,
        seen: set[str],
        trace_ctx: TraceContext,
    ) -> str:
        if call["name"] not in _TOOL_NAMES:
            return f"Tool error: unknown tool {call['name']!r}. Use {ADMIN_API_TOOL}."
        try:
            request = request_from_arguments(call["arguments"])
        except ValidationError as e:
            return f"Tool error: {e}"

        validation = validate_request(index, request.method, request.path, self.policy)
        if not validation.allowed:
            outcome.rejected.append(request.describe())
            return (
                f"Tool error: {request.method} {request.path} is not an allowed operation. "
                "Choose a path from the allowed list."
            )
        request = request.model_copy(update={"path": validation.path})

        if request.is_write:
            request = normalize_write_request(request)
            outcome.pending_writes.append(request)
            log.info(WRITE_DEFERRED, request=request.describe(), **trace_ctx.log_fields())
            return (
                f"Tool result: {request.method} {request.path}\n"
                "Status: pending_confirmation\n"
                'JSON: {"executed": false, "reason": "writes require operator confirmation"}'
            )

        request = with_default_list_limit(request, self.default_list_limit)
        signature = request.describe()
        if signature in seen:
            return f"Tool result: {signature}\nStatus: duplicate\nJSON: (same as the earlier result)"
        seen.add(signature)

        result = await self.api.request(request, auth, trace_ctx)
        outcome.results.append(result)
        return render_observation(result, self.max_tool_result_chars)

    # ------------------------------------------------------------------
    # Plan execution
    # ------------------------------------------------------------------

    async def execute_plan(
        self,
        steps: Sequence[ExecutionStep],
        auth: AuthContext | None = None,
        trace_ctx: TraceContext | None = None,
        initial_data: Any = None,
    ) -> PlanResult:
        """Run steps in order, recording failures without aborting.

        Args:
            steps: Plan steps, numbered from 1 and strictly increasing.
            auth: Caller credentials for API steps.
            trace_ctx: Trace context for log correlation.
            initial_data: Context visible to the first expression step.

        Returns:
            PlanResult with one StepResult per step and the last successful data.

        Raises:
            ValidationError: If step numbers do not strictly increase.
        """
        trace_ctx = trace_ctx or TraceContext.new_trace()
        check_step_order(steps)
        index = await self.catalog.get()
        plan = PlanResult(data=initial_data)
        previous: list[Any] = []

        for step in steps:
            log.info(STEP_STARTED, step=step.step, method=step.method, **trace_ctx.log_fields())
            try:
                data = await self._execute_step(step, plan.data, previous, index, auth, trace_ctx)
            except AgentError as e:
                plan.steps.append(
                    StepResult(
                        step=step.step,
                        action=step.action,
                        method=step.method,
                        success=False,
                        error=str(e),
                    )
                )
                log.warning(
                    STEP_FAILED,
                    step=step.step,
                    method=step.method,
                    error_type=type(e).__name__,
                    error=str(e)[:300],
                    **trace_ctx.log_fields(),
                )
                continue

            plan.steps.append(
                StepResult(
                    step=step.step, action=step.action, method=step.method, success=True, data=data
                )
            )
            plan.data = data
            previous.append(data)
            log.info(STEP_EXECUTED, step=step.step, method=step.method, **trace_ctx.log_fields())

        return plan

    async def _execute_step(
        self,
        step: ExecutionStep,
        last_data: Any,
        previous: list[Any],
        index: CatalogIndex,
        auth: AuthContext | None,
        trace_ctx: TraceContext,
    ) -> Any:
        method = (step.method or "").strip().lower()
        if method == StepMethod.API.value:
            return await self._run_api_step(step, index, auth, trace_ctx)
        if method == StepMethod.SERVICE.value:
            return await self._run_service_step(step)
        if method == StepMethod.GRAPH.value:
            return await self._run_graph_step(step)
        if method in EXPRESSION_ALIASES:
            return evaluate_expression(step.code, expression_bindings(last_data, previous))
        raise UnsupportedOperation(f"Unknown method type: {step.method}")

    async def _run_api_step(
        self,
        step: ExecutionStep,
        index: CatalogIndex,
        auth: AuthContext | None,
        trace_ctx: TraceContext,
    ) -> Any:
        request = parse_api_step(step.code)
        validation = validate_request(index, request.method, request.path, self.policy)
        if not validation.allowed:
            raise NotFoundError(f"Endpoint not in catalog: {request.describe()}")
        request = request.model_copy(update={"path": validation.path})
        if request.is_write:
            raise UnsupportedOperation(f"{request.describe()} needs confirmation and was not executed")

        request = with_default_list_limit(request, self.default_list_limit)
        result = await self.api.request(request, auth, trace_ctx)
        if not result.success:
            raise ExecutionError(
                result.error or f"{request.describe()} failed",
                step=step.step,
                status_code=result.status_code,
                detail=result.output,
            )
        return result.output

    async def _run_service_step(self, step: ExecutionStep) -> Any:
        service, method, args = parse_service_call(step.code)
        try:
            result = await self.registry.invoke(service, method, args)
        except AgentError:
            raise
        except Exception as e:
            raise ExecutionError(
                f"{service}.{method} failed: {type(e).__name__}: {e}", step=step.step
            ) from e
        return normalize_service_result(result)

    async def _run_graph_step(self, step: ExecutionStep) -> Any:
        spec = parse_graph_step(step.code)
        if self.graph_runner is None:
            raise UnsupportedOperation("Graph queries are not available in this deployment")
        try:
            result = self.graph_runner(spec)
            if inspect.isawaitable(result):
                result = await result
        except AgentError:
            raise
        except Exception as e:
            raise ExecutionError(f"Graph query failed: {type(e).__name__}: {e}", step=step.step) from e
        return result
