"""Disambiguation and suspend/resume controller.

When a lookup ("orders for Sarah") matches several records, the controller
persists a RunState with the candidate options and returns a suspended
response. A later resume call loads that state, checks the selection and
continues from the suspension point: it fetches the target records (orders
of the chosen customer, or the chosen record itself) and may suspend again,
for instance to confirm a write the operator asked for.

The same controller holds write confirmations: proposed writes are stored with
the run and only executed once the operator confirms.
"""

import uuid
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from admin_agent.errors import ExecutionError, ExpiredRun, NotFoundError, ValidationError
from admin_agent.orchestrator.lookup import LookupIntent, parse_lookup_intent
from admin_agent.orchestrator.run_store import RunStore, expired_state
from admin_agent.orchestrator.shaping import extract_items, record_label, total_count
from admin_agent.orchestrator.types import (
    Activation,
    AgentResponse,
    RouteMode,
    RunState,
    RunStatus,
    StepResult,
    SuspendOption,
    SuspendPayload,
)
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import (
    RUN_CLAIM_LOST,
    RUN_COMPLETED,
    RUN_CREATED,
    RUN_EXPIRED,
    RUN_FAILED,
    RUN_RESUMED,
    RUN_SUSPENDED,
    RUNS_PURGED,
)
from admin_agent.telemetry.trace import TraceContext
from admin_agent.tools.admin_api import AdminApiClient
from admin_agent.tools.types import AdminRequest, AuthContext, ToolResult

log = get_logger(__name__)

VIEW_ALL_ACTION = "view-all"
CONFIRM_OPTION = "confirm"
CANCEL_OPTION = "cancel"
MAX_LISTED_ORDERS = 25
MAX_DETAIL_FIELDS = 12
VIEW_ALL_LIMIT = 50

_SELECTION_KEYS = ("selected_option_id", "selectedOptionId", "selectedId", "selection", "id")
_TIP_FIELDS = (
    ("status", "status"),
    ("fulfillment_status", "fulfillment"),
    ("payment_status", "payment"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_run_id() -> str:
    """Generate an opaque run id."""
    return f"run_{uuid.uuid4().hex}"


def selected_option_id(resume_data: dict[str, Any]) -> str | None:
    """Selection from resume data, accepting the usual key spellings."""
    for key in _SELECTION_KEYS:
        value = resume_data.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
            return str(value).strip()
    return None


def to_activation(result: ToolResult) -> Activation:
    """Activation entry for one executed backend call."""
    return Activation(
        name=result.tool_name,
        arguments=result.request.model_dump(),
        result={"status": result.status_code, "error": result.error},
    )


def order_tip(orders: list[Any]) -> str:
    """Summary line: count plus the two most common status values per field."""
    records = [o for o in orders if isinstance(o, dict)]
    parts = [f"{len(records)} orders"]
    for field, label in _TIP_FIELDS:
        counts = Counter(str(o[field]) for o in records if o.get(field))
        if counts:
            top = ", ".join(f"{value} ({n})" for value, n in counts.most_common(2))
            parts.append(f"{label}: {top}")
    return " • ".join(parts)


def _order_line(order: dict[str, Any]) -> str:
    parts = [f"#{order['display_id']}" if order.get("display_id") else str(order.get("id", "?"))]
    if order.get("status"):
        parts.append(str(order["status"]))
    if order.get("total") is not None:
        currency = str(order.get("currency_code") or "").upper()
        parts.append(f"{order['total']} {currency}".strip())
    if order.get("created_at"):
        parts.append(str(order["created_at"])[:10])
    return "- " + " · ".join(parts)


def orders_reply(name: str, data: Any) -> str:
    """Reply listing the orders of one customer."""
    _, items = extract_items(data)
    orders = [o for o in items if isinstance(o, dict)]
    if not orders:
        return f"No orders found for {name}."
    total = total_count(data, orders)
    lines = [f"Found {total} order{'s' if total != 1 else ''} for {name}:"]
    lines.extend(_order_line(order) for order in orders[:MAX_LISTED_ORDERS])
    if total > MAX_LISTED_ORDERS:
        lines.append(f"...and {total - MAX_LISTED_ORDERS} more.")
    lines.extend(["", f"Tip: {order_tip(orders)}"])
    return "\n".join(lines)


def _unwrap_record(data: Any) -> Any:
    # {"customer": {...}} -> {...}
    if isinstance(data, dict) and len(data) == 1:
        (value,) = data.values()
        if isinstance(value, dict):
            return value
    return data


def detail_reply(option: SuspendOption, data: Any) -> str:
    """Reply showing one record's scalar fields."""
    record = _unwrap_record(data)
    lines = [f"**{option.get('label') or option.get('id')}** ({option.get('id')})"]
    if isinstance(record, dict):
        shown = 0
        for key, value in record.items():
            if shown >= MAX_DETAIL_FIELDS:
                break
            if key == "id" or isinstance(value, (dict, list)) or value in (None, ""):
                continue
            lines.append(f"- {key}: {value}")
            shown += 1
    return "\n".join(lines)


def list_reply(resource: str, data: Any) -> str:
    """Reply enumerating a collection page."""
    _, items = extract_items(data)
    if not items:
        return f"No {resource} found."
    total = total_count(data, items)
    lines = [f"Showing {len(items)} of {total} {resource}:"]
    for item in items:
        if isinstance(item, dict):
            lines.append(f"- {record_label(item)} ({item.get('id', '?')})")
        else:
            lines.append(f"- {item}")
    return "\n".join(lines)


class DisambiguationController:
    """Suspends ambiguous lookups and resumes them from persisted state.

    Attributes:
        store: Durable RunStore.
        api: Admin API client (caller credentials are passed per call).
        executor: ActionExecutor for lookups that end in a write request.
        retention: Age after which a suspended run can no longer be resumed.
        max_options: Options offered per suspension.
        purge_grace: How long expired and finished runs are kept before
            purge_expired deletes them.
    """

    def __init__(
        self,
        store: RunStore,
        api: AdminApiClient | None = None,
        executor: Any = None,
        retention_seconds: int | None = None,
        max_options: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
        purge_grace_seconds: int | None = None,
    ) -> None:
        from admin_agent.config import settings  # noqa: PLC0415

        self.store = store
        self.api = api or AdminApiClient()
        self.executor = executor
        self.retention = timedelta(seconds=retention_seconds or settings.run_retention_seconds)
        self.purge_grace = timedelta(
            seconds=settings.run_purge_grace_seconds
            if purge_grace_seconds is None
            else purge_grace_seconds
        )
        self.max_options = max_options or settings.disambiguation_max_options
        self.clock = clock

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def resolve_intent(
        self, message: str, entities: dict[str, Any] | None = None
    ) -> LookupIntent | None:
        """Lookup intent from the message, completed with extracted entities."""
        intent = parse_lookup_intent(message)
        entities = entities or {}
        identifier = entities.get("identifier")
        if intent is None:
            resource = entities.get("resource")
            if not resource:
                return None
            kind = entities.get("intent")
            if kind not in ("list", "search", "detail"):
                kind = None
            return LookupIntent(
                kind=kind or ("search" if identifier else "list"),
                resource=resource,
                identifier=identifier,
                endpoint=f"/admin/{resource}",
            )
        if intent.identifier is None and identifier:
            return LookupIntent(**{**intent.to_dict(), "identifier": identifier})
        return intent

    async def query_matches(
        self,
        intent: LookupIntent,
        auth: AuthContext | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> tuple[list[SuspendOption], int, ToolResult]:
        """Search the intent's collection for candidates.

        Returns:
            (options, total_count, the executed call). Options are capped at
            max_options; a failed call yields no options.
        """
        if intent.kind == "list" or not intent.identifier:
            query: dict[str, Any] = {"limit": self.max_options}
        else:
            query = {"q": intent.identifier}
        request = AdminRequest(method="GET", path=intent.endpoint, query=query)
        result = await self.api.request(request, auth, trace_ctx)
        if not result.success:
            return [], 0, result

        _, items = extract_items(result.output)
        options: list[SuspendOption] = []
        for item in items:
            if not isinstance(item, dict) or item.get("id") in (None, ""):
                continue
            metadata = {
                key: item[key]
                for key in dict.fromkeys((intent.search_field, "email", "status"))
                if item.get(key) not in (None, "")
            }
            options.append(SuspendOption(id=str(item["id"]), label=record_label(item), metadata=metadata))
            if len(options) >= self.max_options:
                break
        return options, max(total_count(result.output, items), len(options)), result

    async def start(
        self,
        message: str,
        auth: AuthContext | None = None,
        entities: dict[str, Any] | None = None,
        trace_ctx: TraceContext | None = None,
        intent: LookupIntent | None = None,
    ) -> AgentResponse:
        """Run a lookup, suspending when several records match.

        Args:
            message: Operator message.
            auth: Caller credentials.
            entities: Extracted entities that complete the regex parse.
            trace_ctx: Trace context for log correlation.
            intent: Pre-resolved lookup intent.

        Returns:
            A completed response (no match, a single match, or a failure) or a
            suspended response carrying at least two options.

        Raises:
            ValidationError: If the message names nothing to look up.
        """
        trace_ctx = trace_ctx or TraceContext.new_trace()
        intent = intent or self.resolve_intent(message, entities)
        if intent is None:
            raise ValidationError("Could not tell which records to look up")

        if intent.kind == "detail" and intent.identifier:
            option = SuspendOption(id=intent.identifier, label=intent.identifier, metadata={})
            return await self._continue(None, message, intent, option, auth, trace_ctx, [])

        options, total, search = await self.query_matches(intent, auth, trace_ctx)
        activations = [to_activation(search)]
        if not search.success:
            return AgentResponse.completed(
                f"Could not search {intent.resource}: {search.error}",
                activations,
                trace_id=trace_ctx.trace_id,
            )
        if not options:
            what = f" for '{intent.identifier}'" if intent.identifier else ""
            return AgentResponse.completed(
                f"No matches found{what} in {intent.resource}.", activations, trace_id=trace_ctx.trace_id
            )
        if len(options) == 1:
            return await self._continue(None, message, intent, options[0], auth, trace_ctx, activations)

        payload = self._selection_payload(intent, options, total)
        state = RunState(
            run_id=new_run_id(),
            mode=RouteMode.HITL,
            message=message,
            status=RunStatus.SUSPENDED,
            suspend_payload=payload,
            steps=[
                StepResult(
                    step=1,
                    action=f"Search {intent.resource}",
                    method="api",
                    success=True,
                    data={"matches": len(options), "total_count": total},
                )
            ],
            context={"intent": intent.to_dict()},
            created_at=self.clock(),
            updated_at=self.clock(),
        )
        await self.store.create(state)
        trace_ctx = trace_ctx.with_run(state.run_id)
        log.info(RUN_CREATED, mode=state.mode.value, **trace_ctx.log_fields())
        log.info(RUN_SUSPENDED, kind=payload.kind, options=len(options), **trace_ctx.log_fields())
        return AgentResponse.suspended(state.run_id, payload, activations, trace_id=trace_ctx.trace_id)

    def _selection_payload(
        self, intent: LookupIntent, options: list[SuspendOption], total: int
    ) -> SuspendPayload:
        label = intent.resource
        if intent.kind == "list":
            reason = (
                f"Showing {len(options)} of {total} {label}. Select one to view details:"
                if total > len(options)
                else f"Found {len(options)} {label}. Select one to view details:"
            )
        else:
            reason = f"Found {len(options)} {label}. Please select one:"
        actions = (
            [{"id": VIEW_ALL_ACTION, "label": f"View all {total} {label}"}]
            if total > len(options)
            else []
        )
        return SuspendPayload(
            kind="select", reason=reason, options=options, actions=actions, total_count=total
        )

    async def suspend_for_confirmation(
        self,
        message: str,
        writes: list[AdminRequest],
        activations: list[Activation] | None = None,
        trace_ctx: TraceContext | None = None,
        state: RunState | None = None,
    ) -> AgentResponse:
        """Hold proposed writes until the operator confirms them.

        Args:
            message: Operator message that led to the writes.
            writes: Requests to hold (never executed here).
            activations: Trace of calls already made.
            trace_ctx: Trace context for log correlation.
            state: Existing run to suspend again; a new run is created otherwise.
        """
        trace_ctx = trace_ctx or TraceContext.new_trace()
        if not writes:
            raise ValidationError("Nothing to confirm")
        described = "\n".join(f"- {w.describe()}" for w in writes)
        payload = SuspendPayload(
            kind="confirm_write",
            reason=f"The following changes need your confirmation:\n{described}",
            options=[
                SuspendOption(id=CONFIRM_OPTION, label=f"Apply {len(writes)} change(s)", metadata={}),
                SuspendOption(id=CANCEL_OPTION, label="Cancel", metadata={}),
            ],
            total_count=len(writes),
        )
        context = {"pending_writes": [w.model_dump(mode="json") for w in writes]}

        if state is None:
            state = RunState(
                run_id=new_run_id(),
                mode=RouteMode.TOOL,
                message=message,
                status=RunStatus.SUSPENDED,
                suspend_payload=payload,
                context=context,
                created_at=self.clock(),
                updated_at=self.clock(),
            )
            await self.store.create(state)
            log.info(RUN_CREATED, mode=state.mode.value, **trace_ctx.with_run(state.run_id).log_fields())
        else:
            state = state.model_copy(
                update={
                    "status": RunStatus.SUSPENDED,
                    "suspend_payload": payload,
                    "context": {**state.context, **context},
                    "updated_at": self.clock(),
                }
            )
            await self.store.update(state)

        trace_ctx = trace_ctx.with_run(state.run_id)
        log.info(RUN_SUSPENDED, kind=payload.kind, writes=len(writes), **trace_ctx.log_fields())
        return AgentResponse.suspended(state.run_id, payload, activations, trace_id=trace_ctx.trace_id)

    # ------------------------------------------------------------------
    # Resume
    # ------------------------------------------------------------------

    def is_expired(self, state: RunState) -> bool:
        """True once a run has been idle longer than the retention window."""
        return self.clock() - state.updated_at > self.retention

    async def load_suspended(self, run_id: str, trace_ctx: TraceContext) -> RunState:
        """Load a run that is waiting for input.

        Raises:
            NotFoundError: Unknown or finished run, or one another resume is
                already working on.
            ExpiredRun: Run idle past the retention window.
        """
        state = await self.store.get(run_id)
        if state is None:
            raise NotFoundError(f"Unknown run: {run_id}")
        if state.status == RunStatus.FAILED and state.context.get("expired"):
            raise ExpiredRun(f"Run expired: {run_id}")
        if state.is_terminal:
            raise NotFoundError(f"Run already finished: {run_id}")
        if self.is_expired(state):
            await self.store.update(expired_state(state))
            age = (self.clock() - state.updated_at).total_seconds()
            log.warning(RUN_EXPIRED, age_seconds=round(age), **trace_ctx.log_fields())
            raise ExpiredRun(f"Run expired: {run_id}")
        if state.status != RunStatus.SUSPENDED or state.suspend_payload is None:
            raise NotFoundError(f"Run is not waiting for input: {run_id}")
        return state

    async def claim(self, state: RunState, trace_ctx: TraceContext) -> RunState:
        """Take a loaded suspended run for this resume (SUSPENDED -> RUNNING).

        Must happen before any backend call made for the resume.

        Raises:
            NotFoundError: Another resume claimed the run first.
        """
        claimed = await self.store.claim(state.run_id, self.clock())
        if claimed is None:
            log.warning(RUN_CLAIM_LOST, **trace_ctx.log_fields())
            raise NotFoundError(f"Run is already being resumed: {state.run_id}")
        return claimed

    async def resume(
        self,
        run_id: str,
        resume_data: dict[str, Any],
        auth: AuthContext | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> AgentResponse:
        """Continue a suspended run with the operator's answer.

        Args:
            run_id: Run to resume.
            resume_data: {"selected_option_id": ...}, {"action": "view-all"}
                or {"confirmed": true|false}.
            auth: Caller credentials for the continued calls.
            trace_ctx: Trace context for log correlation.

        Returns:
            Completed response, or a new suspension of the same run.

        Raises:
            NotFoundError: Unknown or finished run (never recreated).
            ExpiredRun: Run idle past the retention window.
            ValidationError: Selection is not one of the offered options.
        """
        trace_ctx = (trace_ctx or TraceContext.new_trace()).with_run(run_id)
        state = await self.load_suspended(run_id, trace_ctx)
        payload = state.suspend_payload
        assert payload is not None
        log.info(RUN_RESUMED, kind=payload.kind, **trace_ctx.log_fields())

        if payload.kind == "confirm_write":
            return await self._resume_confirmation(state, resume_data, auth, trace_ctx)

        intent = LookupIntent.from_dict(
            state.context.get("intent") or {"kind": "search", "resource": "customers"}
        )
        if resume_data.get("action") == VIEW_ALL_ACTION and any(
            a.get("id") == VIEW_ALL_ACTION for a in payload.actions
        ):
            running = await self.claim(state, trace_ctx)
            return await self._view_all(running, intent, auth, trace_ctx)

        selected = selected_option_id(resume_data)
        if selected is None:
            raise ValidationError("resume_data must carry selected_option_id")
        option = next((o for o in payload.options if o.get("id") == selected), None)
        if option is None:
            raise ValidationError(f"Not one of the offered options: {selected}")

        running = await self.claim(state, trace_ctx)
        return await self._continue(running, state.message, intent, option, auth, trace_ctx, [])

    async def _view_all(
        self,
        state: RunState,
        intent: LookupIntent,
        auth: AuthContext | None,
        trace_ctx: TraceContext,
    ) -> AgentResponse:
        request = AdminRequest(method="GET", path=intent.endpoint, query={"limit": VIEW_ALL_LIMIT})
        result = await self.api.request(request, auth, trace_ctx)
        reply = (
            list_reply(intent.resource, result.output)
            if result.success
            else f"Could not list {intent.resource}: {result.error}"
        )
        await self._finish(state, f"List all {intent.resource}", result, trace_ctx)
        return AgentResponse.completed(
            reply, [to_activation(result)], run_id=state.run_id, trace_id=trace_ctx.trace_id
        )

    async def _continue(
        self,
        state: RunState | None,
        message: str,
        intent: LookupIntent,
        option: SuspendOption,
        auth: AuthContext | None,
        trace_ctx: TraceContext,
        activations: list[Activation],
    ) -> AgentResponse:
        selected_id = str(option.get("id") or "")
        label = option.get("label") or selected_id
        run_id = state.run_id if state is not None else None

        if intent.write_requested and self.executor is not None:
            return await self._continue_with_write(state, message, intent, option, auth, trace_ctx, activations)

        target, link_key = intent.target_endpoint, intent.link_key
        if not target and selected_id.startswith("cus_"):
            target, link_key = "/admin/orders", "customer_id"
        if intent.kind == "orders" and not target:
            await self._fail(state, "Missing target endpoint", trace_ctx)
            return AgentResponse.completed("Missing target endpoint", activations, run_id, trace_ctx.trace_id)
        if not selected_id:
            await self._fail(state, "No matches found", trace_ctx)
            return AgentResponse.completed("No matches found", activations, run_id, trace_ctx.trace_id)

        if target:
            request = AdminRequest(
                method="GET",
                path=target.replace("{id}", selected_id),
                query={link_key: selected_id} if link_key else {},
            )
        else:
            request = AdminRequest(method="GET", path=f"{intent.endpoint.rstrip('/')}/{selected_id}")

        result = await self.api.request(request, auth, trace_ctx)
        activations = [*activations, to_activation(result)]
        if not result.success:
            error = ExecutionError(
                result.error or "request failed", status_code=result.status_code, detail=result.output
            )
            await self._finish(state, request.describe(), result, trace_ctx)
            return AgentResponse.completed(
                f"Could not load {request.describe()}: {error}", activations, run_id, trace_ctx.trace_id
            )

        if target and link_key:
            reply = orders_reply(label, result.output)
        else:
            reply = detail_reply(option, result.output)
        await self._finish(state, request.describe(), result, trace_ctx)
        return AgentResponse.completed(reply, activations, run_id, trace_ctx.trace_id)

    async def _continue_with_write(
        self,
        state: RunState | None,
        message: str,
        intent: LookupIntent,
        option: SuspendOption,
        auth: AuthContext | None,
        trace_ctx: TraceContext,
        activations: list[Activation],
    ) -> AgentResponse:
        singular = intent.resource[:-1] if intent.resource.endswith("s") else intent.resource
        focused = f"{message}\n\nSelected {singular}: {option.get('label')} (id {option.get('id')})"
        loop = await self.executor.run_tool_loop(focused, auth=auth, trace_ctx=trace_ctx)
        activations = [*activations, *loop.activations()]
        if loop.pending_writes:
            return await self.suspend_for_confirmation(
                message, loop.pending_writes, activations, trace_ctx, state=state
            )
        reply = loop.reply or f"No changes were proposed for {option.get('label')}."
        if state is not None:
            await self._save(state.model_copy(update={"status": RunStatus.COMPLETED}), trace_ctx)
        return AgentResponse.completed(
            reply, activations, state.run_id if state else None, trace_ctx.trace_id
        )

    async def _resume_confirmation(
        self,
        state: RunState,
        resume_data: dict[str, Any],
        auth: AuthContext | None,
        trace_ctx: TraceContext,
    ) -> AgentResponse:
        state = await self.claim(state, trace_ctx)
        confirmed = resume_data.get("confirmed") is True or selected_option_id(resume_data) == CONFIRM_OPTION
        writes = [AdminRequest.model_validate(w) for w in state.context.get("pending_writes", [])]
        if not confirmed:
            await self._save(
                state.model_copy(
                    update={"status": RunStatus.COMPLETED, "suspend_payload": None, "updated_at": self.clock()}
                ),
                trace_ctx,
            )
            return AgentResponse.completed(
                "Cancelled. No changes were made.", [], state.run_id, trace_ctx.trace_id
            )

        steps = list(state.steps)
        activations: list[Activation] = []
        lines = []
        for write in writes:
            result = await self.api.request(write, auth, trace_ctx)
            activations.append(to_activation(result))
            steps.append(
                StepResult(
                    step=(steps[-1].step + 1) if steps else 1,
                    action=write.describe(),
                    method="api",
                    success=result.success,
                    data=result.output if result.success else None,
                    error=result.error,
                )
            )
            status = "done" if result.success else f"failed ({result.error})"
            lines.append(f"- {write.describe()}: {status}")

        all_failed = not any(step.success for step in steps[len(state.steps) :])
        final = state.model_copy(
            update={
                "status": RunStatus.FAILED if all_failed else RunStatus.COMPLETED,
                "suspend_payload": None,
                "steps": steps,
                "updated_at": self.clock(),
            }
        )
        await self._save(final, trace_ctx)
        return AgentResponse.completed(
            "Applied changes:\n" + "\n".join(lines), activations, state.run_id, trace_ctx.trace_id
        )

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    async def _save(self, state: RunState, trace_ctx: TraceContext) -> None:
        state = state.model_copy(update={"updated_at": self.clock()})
        await self.store.update(state)
        event = RUN_FAILED if state.status == RunStatus.FAILED else RUN_COMPLETED
        log.info(event, steps=len(state.steps), **trace_ctx.log_fields())

    async def _finish(
        self, state: RunState | None, action: str, result: ToolResult, trace_ctx: TraceContext
    ) -> None:
        if state is None:
            return
        step = StepResult(
            step=state.next_step,
            action=action,
            method="api",
            success=result.success,
            data={"status": result.status_code},
            error=result.error,
        )
        await self._save(
            state.model_copy(
                update={
                    "status": RunStatus.COMPLETED if result.success else RunStatus.FAILED,
                    "suspend_payload": None,
                    "steps": [*state.steps, step],
                }
            ),
            trace_ctx,
        )

    async def _fail(self, state: RunState | None, error: str, trace_ctx: TraceContext) -> None:
        if state is None:
            return
        await self._save(
            state.model_copy(
                update={
                    "status": RunStatus.FAILED,
                    "suspend_payload": None,
                    "context": {**state.context, "error": error},
                }
            ),
            trace_ctx,
        )

    async def purge_expired(self) -> int:
        """Garbage-collect runs.

        Unfinished runs idle past the retention window are marked FAILED and
        expired first (resuming one still raises ExpiredRun). Finished runs are
        deleted once idle past retention plus the grace window.

        Returns:
            Number of deleted runs.
        """
        now = self.clock()
        expired = await self.store.expire_idle(now - self.retention)
        deleted = await self.store.delete_expired(now - self.retention - self.purge_grace)
        if expired or deleted:
            log.info(RUNS_PURGED, expired=expired, deleted=deleted)
        return deleted
