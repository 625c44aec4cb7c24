"""CLI entry point for the agent runtime."""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from agent_runtime.config import RuntimeConfig

app = typer.Typer(
    name="agent-runtime",
    help="Agent runtime: answer task and time-tracking requests with a ReAct loop.",
    no_args_is_help=True,
)
console = Console()

DEFAULT_CONFIG = Path.cwd() / ".agent" / "config.yaml"


def _load_config(config_path: Path, db: Path | None) -> RuntimeConfig:
    config = RuntimeConfig.from_yaml(config_path)
    if db is not None:
        config.database_path = db
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    return config


def _ensure_db_dir(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


@app.command()
def init(
    config_path: Path = typer.Option(DEFAULT_CONFIG, "--config", help="Path to YAML config"),
    db: Path | None = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Create the task, time-tracking and log database."""
    from agent_runtime.storage.sqlite import SQLiteStore

    config = _load_config(config_path, db)
    _ensure_db_dir(config.database_path)

    async def _init() -> None:
        store = SQLiteStore(config.database_path)
        await store.initialize()
        await store.close()

    asyncio.run(_init())
    console.print(f"[green]Initialized agent runtime at {config.database_path}[/green]")


@app.command()
def ask(
    message: str = typer.Argument(help="What to ask the assistant"),
    session: str | None = typer.Option(None, help="Conversation session id"),
    provider: str | None = typer.Option(None, help="Provider to use: 'local' or 'gemini'"),
    show_trace: bool = typer.Option(False, "--trace", help="Print the reasoning trace"),
    judge: bool = typer.Option(False, help="Score the trace with the judge model"),
    config_path: Path = typer.Option(DEFAULT_CONFIG, "--config", help="Path to YAML config"),
    db: Path | None = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Run one request through the assistant and print the answer."""
    from agent_runtime.errors import ServiceError
    from agent_runtime.models.requests import AgentRequest
    from agent_runtime.service import ServiceManager
    from agent_runtime.storage.sqlite import SQLiteStore
    from agent_runtime.tools import build_default_registry
    from agent_runtime.tracking import ExecutionLogger, InteractionLogger

    config = _load_config(config_path, db)
    _ensure_db_dir(config.database_path)
    session_id = session or str(uuid.uuid4())

    async def _ask() -> None:
        store = SQLiteStore(config.database_path)
        await store.initialize()
        service = None
        try:
            registry = await build_default_registry(
                store, store, config.permissions, ExecutionLogger(store, session_id)
            )
            service = await ServiceManager.from_config(config, registry, InteractionLogger(store))
            await service.initialize()

            response = await service.process_message(
                AgentRequest(message=message, session_id=session_id, model_preference=provider)
            )
            console.print(f"\n[bold]Assistant[/bold] ({response.metadata['provider']}):")
            console.print(response.message)
            console.print(
                f"[dim]session {response.session_id} · "
                f"{response.metadata['total_time_ms']}ms[/dim]"
            )

            trace = service.get_trace(response.metadata["trace_id"])
            if trace is None:
                return
            if show_trace:
                table = Table(title=f"Trace {trace.id}")
                table.add_column("#", justify="right")
                table.add_column("Kind")
                table.add_column("Content")
                table.add_column("Tool")
                for i, step in enumerate(trace.steps, start=1):
                    tool = ""
                    if step.tool_result is not None:
                        mark = "ok" if step.tool_result.success else "failed"
                        tool = f"{step.tool_call.name if step.tool_call else '?'} ({mark})"
                    table.add_row(str(i), step.kind.value, step.content, tool)
                console.print(table)
            if judge:
                evaluation = await service.evaluate_trace(trace)
                console.print(f"\n[bold]Judge score:[/bold] {evaluation.overall_score:.2f}/10")
                console.print(evaluation.general_feedback)
                for recommendation in evaluation.recommendations:
                    console.print(f"  • {recommendation}")
        except ServiceError as e:
            console.print(f"[red]{e.error_type}: {e.message}[/red]")
            raise typer.Exit(1) from e
        finally:
            if service is not None:
                await service.shutdown()
            await store.close()

    asyncio.run(_ask())


@app.command()
def tasks(
    status: str | None = typer.Option(None, help="Filter by status"),
    config_path: Path = typer.Option(DEFAULT_CONFIG, "--config", help="Path to YAML config"),
    db: Path | None = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """List stored tasks."""
    from agent_runtime.models.records import TaskStatus
    from agent_runtime.storage.sqlite import SQLiteStore

    config = _load_config(config_path, db)
    if status is not None and status not in {s.value for s in TaskStatus}:
        console.print(f"[red]Unknown status '{status}'[/red]")
        raise typer.Exit(1)

    async def _tasks() -> None:
        store = SQLiteStore(config.database_path)
        await store.initialize()
        try:
            found = await store.find_all(status=TaskStatus(status) if status else None)
            if not found:
                console.print("[dim]No tasks found.[/dim]")
                return
            table = Table(title=f"Tasks ({len(found)})")
            table.add_column("Title")
            table.add_column("Status")
            table.add_column("Priority", justify="right")
            table.add_column("Scheduled")
            table.add_column("ID", style="dim")
            for task in found:
                scheduled = task.scheduled_date.date().isoformat() if task.scheduled_date else ""
                table.add_row(
                    task.title, task.status.value, str(task.priority), scheduled, task.id
                )
            console.print(table)
        finally:
            await store.close()

    asyncio.run(_tasks())


@app.command()
def status(
    config_path: Path = typer.Option(DEFAULT_CONFIG, "--config", help="Path to YAML config"),
) -> None:
    """Show configured providers and their health."""
    from agent_runtime.service import ServiceManager

    config = _load_config(config_path, None)

    async def _status() -> None:
        service = await ServiceManager.from_config(config)
        try:
            service_status = await service.get_status()
            health = await service.get_all_health()
        finally:
            await service.shutdown()

        if not health:
            console.print("[dim]No providers configured.[/dim]")
            return
        table = Table(title="Providers")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Failures", justify="right")
        table.add_column("Requests", justify="right")
        for name, entry in sorted(health.items()):
            marker = " *" if name == service_status.active_provider else ""
            table.add_row(
                f"{name}{marker}",
                str(entry.status),
                str(entry.consecutive_failures),
                str(entry.total_requests),
            )
        console.print(table)
        ready = "[green]ready[/green]" if service_status.service_ready else "[red]not ready[/red]"
        console.print(f"Service {ready}; active provider: {service_status.active_provider}")

    asyncio.run(_status())


@app.command()
def stats(
    session: str = typer.Argument(help="Session id to report on"),
    config_path: Path = typer.Option(DEFAULT_CONFIG, "--config", help="Path to YAML config"),
    db: Path | None = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show tool execution statistics for a session."""
    from agent_runtime.storage.sqlite import SQLiteStore

    config = _load_config(config_path, db)

    async def _stats() -> None:
        store = SQLiteStore(config.database_path)
        await store.initialize()
        try:
            session_stats = await store.get_session_tool_stats(session)
        finally:
            await store.close()

        if session_stats.total_executions == 0:
            console.print(f"[dim]No tool executions recorded for session {session}.[/dim]")
            return
        console.print(f"\n[bold]Session {session}[/bold]")
        console.print(f"  Executions: {session_stats.total_executions}")
        console.print(f"  Successful: {session_stats.successful_executions}")
        console.print(f"  Failed: {session_stats.failed_executions}")
        console.print(f"  Average time: {session_stats.avg_execution_time_ms:.0f}ms")
        console.print("\n[bold]Tools[/bold]")
        for tool, count in sorted(session_stats.tools_used.items()):
            console.print(f"  {tool}: {count}")

    asyncio.run(_stats())
