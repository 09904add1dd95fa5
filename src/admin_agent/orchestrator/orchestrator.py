"""High-level orchestrator API.

trigger() routes one operator message and dispatches it to the matching mode:
chat, recipe, hitl (lookup with disambiguation), tool (reasoning/acting loop)
or rag (endpoint documentation). resume() continues a suspended run.
"""

from typing import Any

from admin_agent.orchestrator.disambiguation import DisambiguationController
from admin_agent.orchestrator.entity_extraction import extract_entities
from admin_agent.orchestrator.executor import ActionExecutor
from admin_agent.orchestrator.lookup import WRITE_WORDS_RE, parse_lookup_intent
from admin_agent.orchestrator.recipes import match_recipe
from admin_agent.orchestrator.routing import route_message
from admin_agent.orchestrator.run_store import InMemoryRunStore, RunStore
from admin_agent.orchestrator.synthesizer import ResponseSynthesizer
from admin_agent.orchestrator.types import AgentResponse, RouteMode, ToolLoopResult
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import RECIPE_MATCHED, REPLY_READY, REQUEST_RECEIVED
from admin_agent.telemetry.trace import TraceContext
from admin_agent.tools.admin_api import AdminApiClient
from admin_agent.tools.types import AuthContext

log = get_logger(__name__)

RAG_ENDPOINT_LIMIT = 8


def tool_loop_data(loop: ToolLoopResult) -> Any:
    """Data context from executed calls: the single output, or all outputs labelled."""
    outputs = [r for r in loop.results if r.success]
    if not outputs:
        return None
    if len(outputs) == 1:
        return outputs[0].output
    return {"calls": [{"request": r.request.describe(), "data": r.output} for r in outputs]}


def tool_loop_errors(loop: ToolLoopResult) -> list[str]:
    """Error lines for failed calls."""
    return [f"{r.request.describe()}: {r.error}" for r in loop.results if not r.success]


class Orchestrator:
    """Main entry point for operator requests.

    Collaborators are injectable; by default they share one admin API client,
    the process-wide rotation guard and catalog cache, and an in-memory run
    store (the HTTP service passes a database-backed store).
    """

    def __init__(
        self,
        store: RunStore | None = None,
        executor: ActionExecutor | None = None,
        controller: DisambiguationController | None = None,
        synthesizer: ResponseSynthesizer | None = None,
        api: AdminApiClient | None = None,
        guard: Any = None,
        client: Any = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: RunStore for suspended runs.
            executor: ActionExecutor.
            controller: DisambiguationController.
            synthesizer: ResponseSynthesizer.
            api: Admin API client shared by the default collaborators.
            guard: ModelRotationGuard shared by the default collaborators.
            client: InferenceClient shared by the default collaborators.
        """
        self.store = store or InMemoryRunStore()
        self.api = api or AdminApiClient()
        self.executor = executor or ActionExecutor(api=self.api, guard=guard, client=client)
        self.synthesizer = synthesizer or ResponseSynthesizer(
            guard=guard or self.executor.guard, client=client or self.executor.client
        )
        self.controller = controller or DisambiguationController(
            self.store, api=self.api, executor=self.executor
        )

    async def trigger(
        self,
        message: str,
        auth: AuthContext | None = None,
        thread_id: str | None = None,
        resource_id: str | None = None,
        context: dict[str, Any] | None = None,
        history: list[dict[str, Any]] | None = None,
        trace_id: str | None = None,
    ) -> AgentResponse:
        """Handle one operator message.

        Args:
            message: The operator's request.
            auth: Caller credentials, forwarded unchanged to backend calls.
            thread_id: Conversation thread, for log correlation.
            resource_id: Record the operator is looking at, if any.
            context: Extra caller context (e.g. the current admin page).
            history: Prior conversation turns.
            trace_id: Trace id from the entry point; a new one if None.

        Returns:
            Completed response with reply and activations, or a suspended
            response with run_id and suspend_payload.

        Raises:
            ProvidersExhausted: If no model could plan a tool request.
        """
        trace_ctx = TraceContext(trace_id=trace_id) if trace_id else TraceContext.new_trace()
        log.info(
            REQUEST_RECEIVED,
            message_len=len(message),
            thread_id=thread_id,
            resource_id=resource_id,
            authenticated=auth is not None and not auth.is_anonymous,
            **trace_ctx.log_fields(),
        )

        plan = route_message(message, trace_id=trace_ctx.trace_id)
        mode = plan["mode"]
        if mode == RouteMode.RECIPE:
            response = await self._run_recipe(message, auth, trace_ctx)
        elif mode == RouteMode.HITL:
            response = await self._run_hitl(message, auth, history, trace_ctx)
        elif mode == RouteMode.TOOL:
            response = await self._run_tool(
                self._with_context(message, resource_id, context), message, auth, history, trace_ctx
            )
        elif mode == RouteMode.RAG:
            response = await self._run_rag(message, trace_ctx)
        else:
            reply = await self.synthesizer.synthesize(
                message, mode="chat", history=history, trace_ctx=trace_ctx
            )
            response = AgentResponse.completed(reply, trace_id=trace_ctx.trace_id)

        log.info(
            REPLY_READY,
            mode=mode.value,
            status=response.status,
            activations=len(response.activations),
            **trace_ctx.log_fields(),
        )
        return response

    async def resume(
        self,
        run_id: str,
        resume_data: dict[str, Any],
        auth: AuthContext | None = None,
        step: str | None = None,
        trace_id: str | None = None,
    ) -> AgentResponse:
        """Continue a suspended run.

        Raises:
            NotFoundError: Unknown or finished run.
            ExpiredRun: Run idle past the retention window.
            ValidationError: Selection is not one of the offered options.
        """
        trace_ctx = TraceContext(trace_id=trace_id) if trace_id else TraceContext.new_trace()
        log.info(REQUEST_RECEIVED, resume=True, step=step, **trace_ctx.with_run(run_id).log_fields())
        response = await self.controller.resume(run_id, resume_data, auth, trace_ctx)
        log.info(
            REPLY_READY,
            mode="resume",
            status=response.status,
            activations=len(response.activations),
            **trace_ctx.with_run(run_id).log_fields(),
        )
        return response

    @staticmethod
    def _with_context(message: str, resource_id: str | None, context: dict[str, Any] | None) -> str:
        notes = []
        if resource_id:
            notes.append(f"Current record id: {resource_id}")
        if context and context.get("page"):
            notes.append(f"Current admin page: {context['page']}")
        return message if not notes else f"{message}\n\n(" + "; ".join(notes) + ")"

    async def _run_recipe(
        self, message: str, auth: AuthContext | None, trace_ctx: TraceContext
    ) -> AgentResponse:
        recipe = match_recipe(message)
        assert recipe is not None
        log.info(RECIPE_MATCHED, recipe=recipe.name, steps=len(recipe.steps), **trace_ctx.log_fields())
        result = await self.executor.execute_plan(recipe.steps, auth, trace_ctx)
        reply = await self.synthesizer.synthesize(
            message, data=result.data, errors=result.errors, trace_ctx=trace_ctx
        )
        return AgentResponse.completed(reply, result.activations(), trace_id=trace_ctx.trace_id)

    async def _run_hitl(
        self,
        message: str,
        auth: AuthContext | None,
        history: list[dict[str, Any]] | None,
        trace_ctx: TraceContext,
    ) -> AgentResponse:
        # The regex parse is enough when it already found who to look up
        intent = parse_lookup_intent(message)
        if intent is None or not intent.identifier:
            entities = await extract_entities(
                message, self.executor.guard, self.executor.client, trace_ctx
            )
            intent = self.controller.resolve_intent(message, dict(entities))
        if intent is None:
            return await self._run_tool(message, message, auth, history, trace_ctx)
        return await self.controller.start(message, auth, trace_ctx=trace_ctx, intent=intent)

    async def _run_tool(
        self,
        prompt: str,
        message: str,
        auth: AuthContext | None,
        history: list[dict[str, Any]] | None,
        trace_ctx: TraceContext,
    ) -> AgentResponse:
        loop = await self.executor.run_tool_loop(prompt, history, auth, trace_ctx)
        activations = loop.activations()

        if loop.pending_writes:
            if WRITE_WORDS_RE.search(message):
                return await self.controller.suspend_for_confirmation(
                    message, loop.pending_writes, activations, trace_ctx
                )
            log.warning(
                "unrequested_writes_dropped",
                writes=[w.describe() for w in loop.pending_writes],
                **trace_ctx.log_fields(),
            )

        errors = tool_loop_errors(loop)
        if not loop.results and loop.reply:
            return AgentResponse.completed(loop.reply, activations, trace_id=trace_ctx.trace_id)

        reply = await self.synthesizer.synthesize(
            message, data=tool_loop_data(loop), errors=errors, history=history, trace_ctx=trace_ctx
        )
        return AgentResponse.completed(reply, activations, trace_id=trace_ctx.trace_id)

    async def _run_rag(self, message: str, trace_ctx: TraceContext) -> AgentResponse:
        index = await self.executor.catalog.get()
        matches = index.search(message, limit=RAG_ENDPOINT_LIMIT)
        data = (
            {
                "endpoints": [
                    {"method": e.method, "path": e.declared_path or e.path, "summary": e.summary}
                    for e, _ in matches
                ]
            }
            if matches
            else None
        )
        reply = await self.synthesizer.synthesize(message, mode="docs", data=data, trace_ctx=trace_ctx)
        return AgentResponse.completed(reply, trace_id=trace_ctx.trace_id)
