"""FastAPI service application."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Header, HTTPException

from admin_agent.catalog.source import get_catalog_cache
from admin_agent.config.settings import get_settings
from admin_agent.errors import (
    AgentError,
    ExpiredRun,
    NotFoundError,
    ProvidersExhausted,
    UnsupportedOperation,
    ValidationError,
)
from admin_agent.orchestrator import AgentResponse, Orchestrator, SqlRunStore
from admin_agent.security import sanitize_error_message
from admin_agent.service.database import dispose_db, init_db
from admin_agent.service.models import ChatRequest, ResumeRequest
from admin_agent.services import register_service_bindings
from admin_agent.telemetry import get_logger
from admin_agent.tools.types import AuthContext

log = get_logger(__name__)
settings = get_settings()

# Global instance (initialized on first use)
orchestrator: Orchestrator | None = None

_STATUS_BY_ERROR: tuple[tuple[type[AgentError], int], ...] = (
    (NotFoundError, 404),
    (ExpiredRun, 410),
    (ValidationError, 422),
    (UnsupportedOperation, 400),
    (ProvidersExhausted, 503),
)


def get_orchestrator() -> Orchestrator:
    """Process-wide orchestrator backed by the database run store."""
    global orchestrator
    if orchestrator is None:
        orchestrator = Orchestrator(store=SqlRunStore())
    return orchestrator


async def purge_runs_periodically(interval_seconds: float) -> None:
    """Expire and delete stale runs every `interval_seconds` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await get_orchestrator().controller.purge_expired()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("run_purge_failed", error=str(e), exc_info=True)


def to_http_error(error: AgentError) -> HTTPException:
    """Map an agent error to an HTTP error with a sanitized message."""
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(error, cls)), 500)
    return HTTPException(status_code=status, detail=sanitize_error_message(error))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management."""
    # Startup
    log.info("service_starting")

    await init_db()
    log.info("database_initialized")

    # Warm the endpoint catalog; an unreachable source leaves degraded mode on
    index = await get_catalog_cache().get()
    log.info("catalog_warmed", endpoints=len(index), degraded=index.is_empty)

    hooks = register_service_bindings(settings.service_binding_hooks)
    log.info("service_bindings_ready", hooks=hooks)

    purge_task = None
    if settings.run_purge_interval_seconds > 0:
        purge_task = asyncio.create_task(
            purge_runs_periodically(settings.run_purge_interval_seconds)
        )

    log.info("service_ready", port=settings.service_port)

    yield

    # Shutdown
    if purge_task is not None:
        purge_task.cancel()
        await asyncio.gather(purge_task, return_exceptions=True)
    await dispose_db()
    log.info("service_stopped")


app = FastAPI(
    title="Admin Agent Service",
    description="Natural-language action resolver for the admin API",
    version="0.1.0",
    lifespan=lifespan,
)


# ============================================================================
# Health Check
# ============================================================================

HealthResponse = dict[str, Any]


@app.get("/health")
async def health_check() -> HealthResponse:
    """Service health check endpoint."""
    index = get_catalog_cache().current
    return {
        "status": "healthy",
        "components": {
            "database": "connected",
            "catalog": "degraded" if index.is_empty else "loaded",
            "catalog_endpoints": len(index),
        },
    }


# ============================================================================
# Agent Endpoints
# ============================================================================


@app.post("/ai/chat", response_model=AgentResponse, response_model_exclude_none=True)
async def chat(
    request: ChatRequest,
    authorization: str | None = Header(default=None),  # noqa: B008
    cookie: str | None = Header(default=None),  # noqa: B008
) -> AgentResponse:
    """Process an operator message.

    The caller's Authorization and Cookie headers are forwarded unchanged to
    every backend call made for this request.

    Returns:
        {status: completed, reply, activations} or
        {status: suspended, run_id, suspend_payload}
    """
    auth = AuthContext(authorization=authorization, cookie=cookie)
    try:
        return await get_orchestrator().trigger(
            request.message,
            auth=auth,
            thread_id=request.thread_id,
            resource_id=request.resource_id,
            context=request.context,
        )
    except AgentError as e:
        log.warning("chat_failed", error_type=type(e).__name__, error=sanitize_error_message(e))
        raise to_http_error(e) from e


@app.post(
    "/ai/workflows/{run_id}/resume", response_model=AgentResponse, response_model_exclude_none=True
)
async def resume_workflow(
    run_id: str,
    request: ResumeRequest,
    authorization: str | None = Header(default=None),  # noqa: B008
    cookie: str | None = Header(default=None),  # noqa: B008
) -> AgentResponse:
    """Resume a suspended run with the operator's selection or confirmation."""
    auth = AuthContext(authorization=authorization, cookie=cookie)
    try:
        return await get_orchestrator().resume(
            run_id, request.resume_data, auth=auth, step=request.step
        )
    except AgentError as e:
        log.warning(
            "resume_failed",
            run_id=run_id,
            error_type=type(e).__name__,
            error=sanitize_error_message(e),
        )
        raise to_http_error(e) from e
