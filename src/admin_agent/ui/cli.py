"""CLI interface for the admin agent.

This module provides a Typer-based command-line interface for sending
requests to the orchestrator, resuming suspended runs and inspecting the
endpoint catalog.
"""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from admin_agent.orchestrator import AgentResponse, Orchestrator, SqlRunStore
from admin_agent.tools.types import AuthContext

app = typer.Typer(help="Admin Agent - natural-language requests against the admin API")
console = Console()

# Catalog subcommand group
catalog_app = typer.Typer(help="Endpoint catalog inspection")
app.add_typer(catalog_app, name="catalog")


def _auth(token: Optional[str], cookie: Optional[str]) -> AuthContext:
    authorization = token if not token or " " in token else f"Bearer {token}"
    return AuthContext(authorization=authorization, cookie=cookie)


async def _orchestrator() -> Orchestrator:
    from admin_agent.config import settings  # noqa: PLC0415
    from admin_agent.service.database import init_db  # noqa: PLC0415
    from admin_agent.services import register_service_bindings  # noqa: PLC0415

    # Runs must outlive the process so `resume` can pick them up
    await init_db()
    register_service_bindings(settings.service_binding_hooks)
    return Orchestrator(store=SqlRunStore())


def render_response(response: AgentResponse) -> None:
    """Print a completed reply or the options of a suspended run."""
    if response.status == "completed":
        console.print("\n[bold blue]Agent:[/bold blue]")
        console.print(Markdown(response.reply or ""))
    else:
        payload = response.suspend_payload
        assert payload is not None
        console.print(f"\n[bold yellow]{payload.reason}[/bold yellow]")
        table = Table(title=f"Run {response.run_id}")
        table.add_column("Option", style="cyan")
        table.add_column("Label", style="green")
        table.add_column("Details", style="white", overflow="fold")
        for option in payload.options:
            table.add_row(
                option.get("id", ""),
                option.get("label", ""),
                json.dumps(option.get("metadata") or {})[:100],
            )
        console.print(table)
        for action in payload.actions:
            console.print(f"[dim]Action {action.get('id')}: {action.get('label')}[/dim]")
        hint = "--confirm" if payload.kind == "confirm_write" else "--select <option>"
        console.print(f"\n[dim]Resume with: resume {response.run_id} {hint}[/dim]")

    if response.trace_id:
        console.print(f"\n[dim]Trace ID: {response.trace_id}[/dim]")


@app.command(name="ask")
def ask_command(
    message: str = typer.Argument(..., help="Request to send to the agent"),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="AGENT_ADMIN_TOKEN", help="Admin API token (Bearer)"
    ),
    cookie: Optional[str] = typer.Option(None, "--cookie", help="Admin session cookie"),
) -> None:
    """Send one request.

    Examples:
        admin-agent ask "list approved designs"
        admin-agent ask "orders for Sarah" --token $TOKEN
    """

    async def _run() -> AgentResponse:
        orchestrator = await _orchestrator()
        return await orchestrator.trigger(message, auth=_auth(token, cookie))

    render_response(asyncio.run(_run()))


@app.command(name="resume")
def resume_command(
    run_id: str = typer.Argument(..., help="Suspended run id"),
    select: Optional[str] = typer.Option(None, "--select", "-s", help="Option id to select"),
    confirm: bool = typer.Option(False, "--confirm", help="Apply held changes"),
    cancel: bool = typer.Option(False, "--cancel", help="Discard held changes"),
    view_all: bool = typer.Option(False, "--view-all", help="List all matches instead"),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="AGENT_ADMIN_TOKEN", help="Admin API token (Bearer)"
    ),
    cookie: Optional[str] = typer.Option(None, "--cookie", help="Admin session cookie"),
) -> None:
    """Resume a suspended run.

    Examples:
        admin-agent resume run_1a2b --select cus_123
        admin-agent resume run_9f8e --confirm
    """
    if select:
        resume_data: dict = {"selected_option_id": select}
    elif view_all:
        resume_data = {"action": "view-all"}
    elif confirm or cancel:
        resume_data = {"confirmed": confirm and not cancel}
    else:
        console.print("[red]Error: pass --select, --view-all, --confirm or --cancel[/red]")
        raise typer.Exit(1)

    from admin_agent.errors import AgentError  # noqa: PLC0415

    async def _run() -> AgentResponse:
        orchestrator = await _orchestrator()
        return await orchestrator.resume(run_id, resume_data, auth=_auth(token, cookie))

    try:
        response = asyncio.run(_run())
    except AgentError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
        raise typer.Exit(1) from e
    render_response(response)


@catalog_app.command("search")
def catalog_search(
    query: str = typer.Argument(..., help="Free-text query"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum number of results"),
) -> None:
    """Rank catalog endpoints for a query.

    Examples:
        admin-agent catalog search "customer orders"
    """
    from admin_agent.catalog import get_catalog_cache  # noqa: PLC0415

    index = asyncio.run(get_catalog_cache().get())
    if index.is_empty:
        console.print("[yellow]Catalog unavailable (degraded mode).[/yellow]")
        raise typer.Exit(1)

    table = Table(title=f"Catalog matches for '{query}'")
    table.add_column("Score", style="cyan")
    table.add_column("Method", style="green")
    table.add_column("Path", style="blue", overflow="fold")
    table.add_column("Summary", style="white", overflow="fold")
    for endpoint, score in index.search(query, limit=limit):
        table.add_row(str(score), endpoint.method, endpoint.declared_path, endpoint.summary[:80])
    console.print(table)


@app.command(name="serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
) -> None:
    """Run the HTTP service (POST /ai/chat, POST /ai/workflows/{run_id}/resume)."""
    import uvicorn  # noqa: PLC0415

    from admin_agent.config import settings  # noqa: PLC0415
    from admin_agent.service.app import app as service_app  # noqa: PLC0415

    uvicorn.run(
        service_app,
        host=host or settings.service_host,
        port=port or settings.service_port,
    )


if __name__ == "__main__":
    app()
