"""mosbot CLI: Typer-based command-line interface."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from mosbot import __version__
from mosbot.core.errors import SyncError

app = typer.Typer(
    name="mosbot",
    help="mosbot - gateway cron job and heartbeat management",
    no_args_is_help=True,
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"mosbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
) -> None:
    """mosbot - gateway cron job and heartbeat management."""


def _services():
    from mosbot.api.app import build_services
    from mosbot.core.config.loader import load_config

    return build_services(load_config())


def _run(coro):
    """Run a sync-client coroutine, turning SyncError into a non-zero exit."""
    try:
        return asyncio.run(coro)
    except SyncError as e:
        console.print(f"[red]Error ({e.code}):[/red] {e.detail}")
        for err in e.errors:
            console.print(f"  [red]-[/red] {err}")
        raise typer.Exit(code=1)


def _fmt_ms(ms: int | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


# ════════════════════════════════════════════════════════════
# run: start API server
# ════════════════════════════════════════════════════════════


@app.command()
def run(
    port: int | None = typer.Option(None, "--port", "-p", help="Port number (default: server.port)"),
    host: str | None = typer.Option(None, "--host", "-h", help="Host address (default: server.host)"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Start the API server (uvicorn)."""
    import uvicorn

    from mosbot.core.config.loader import load_config

    config = load_config()
    host = host or config.server.host
    port = port or config.server.port

    console.print(f"[green]Starting mosbot API on {host}:{port}[/green]")
    uvicorn.run("mosbot.api.app:create_app", factory=True, host=host, port=port, reload=reload)


# ════════════════════════════════════════════════════════════
# status: resolved configuration
# ════════════════════════════════════════════════════════════


@app.command()
def status() -> None:
    """Show the resolved gateway and workspace configuration."""
    from mosbot.core.config.loader import load_config

    config = load_config()

    table = Table(title="mosbot status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Version", __version__)
    table.add_row("Environment", config.environment)
    table.add_row("Gateway URL", config.gateway_url or "[dim]not configured[/dim]")
    table.add_row("Gateway socket", config.gateway_ws_url or "[dim]not configured[/dim]")
    table.add_row("Workspace URL", config.workspace_url or "[dim]not configured[/dim]")
    table.add_row("Jobs document", config.workspace.jobs_path)
    table.add_row("Agent config", config.workspace.config_path)
    table.add_row("Timezone", config.cron.timezone)

    console.print(table)


# ════════════════════════════════════════════════════════════
# cron: gateway cron job management (sub-command group)
# ════════════════════════════════════════════════════════════

cron_app = typer.Typer(help="Manage gateway cron jobs")
app.add_typer(cron_app, name="cron")


def _schedule_text(job) -> str:
    schedule = job.schedule
    if schedule is None:
        return "-"
    if schedule.kind == "cron":
        return f"{schedule.expr} ({schedule.tz or 'UTC'})"
    if schedule.kind == "every":
        return f"every {schedule.label or f'{schedule.every_ms}ms'}"
    return f"at {schedule.at}"


@cron_app.command("list")
def cron_list(
    heartbeats: bool = typer.Option(True, "--heartbeats/--no-heartbeats", help="Include heartbeat jobs"),
) -> None:
    """List gateway cron jobs."""
    cron, patcher = _services()

    async def _collect():
        jobs = await cron.list_jobs()
        if heartbeats:
            try:
                jobs += await patcher.list_heartbeat_jobs()
            except SyncError as e:
                logger.warning(f"Heartbeat jobs unavailable: [{e.code}] {e.detail}")
        return jobs

    jobs = _run(_collect())
    if not jobs:
        console.print("[dim]No cron jobs found.[/dim]")
        return

    table = Table(title="Cron Jobs")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Agent", style="blue")
    table.add_column("Schedule", style="yellow")
    table.add_column("Next run (UTC)", style="magenta")
    table.add_column("Enabled", style="green")

    for job in jobs:
        table.add_row(
            job.id or "(pending)",
            job.name,
            job.agent_id or "-",
            _schedule_text(job),
            _fmt_ms(job.state.next_run_at_ms),
            str(job.enabled),
        )

    console.print(table)


@cron_app.command("enable")
def cron_enable(job_id: str = typer.Argument(help="Cron job ID")) -> None:
    """Enable a cron job and re-arm its next run."""
    cron, _ = _services()
    job = _run(cron.set_enabled(job_id, True))
    console.print(f"[green]Enabled:[/green] {job_id} (next run {_fmt_ms(job.state.next_run_at_ms)})")


@cron_app.command("disable")
def cron_disable(job_id: str = typer.Argument(help="Cron job ID")) -> None:
    """Disable a cron job."""
    cron, _ = _services()
    _run(cron.set_enabled(job_id, False))
    console.print(f"[yellow]Disabled:[/yellow] {job_id}")


@cron_app.command("trigger")
def cron_trigger(job_id: str = typer.Argument(help="Cron job ID")) -> None:
    """Run a cron job within the next few seconds."""
    cron, _ = _services()
    job = _run(cron.trigger_job(job_id))
    console.print(f"[green]Triggered:[/green] {job_id} at {_fmt_ms(job.state.next_run_at_ms)}")


@cron_app.command("delete")
def cron_delete(job_id: str = typer.Argument(help="Cron job ID to delete")) -> None:
    """Delete a cron job by ID."""
    cron, _ = _services()
    _run(cron.delete_job(job_id))
    console.print(f"[green]Deleted cron job:[/green] {job_id}")
