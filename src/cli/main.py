"""CLI entry point and base commands.

Provides the main CLI application with commands for:
- serve: Run the API server
- status: Show component health
- connections / automations: Inspect stored state
- cleanup: Run the maintenance jobs once
"""

# Configure logging early before other imports
import src.logging_config  # noqa: F401

import asyncio
from typing import Annotated, Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src import __version__
from src.settings import get_settings

app = typer.Typer(
    name="tappha",
    help="Home Assistant event intelligence and automation lifecycle management",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

STATUS_COLORS = {
    "healthy": "green",
    "degraded": "yellow",
    "unhealthy": "red",
    "connected": "green",
    "disconnected": "yellow",
    "error": "red",
    "active": "green",
    "inactive": "yellow",
    "retired": "dim",
}


def _colored(value: str) -> str:
    color = STATUS_COLORS.get(value.lower(), "white")
    return f"[{color}]{value}[/{color}]"


@app.command()
def serve(
    host: Annotated[
        str,
        typer.Option("--host", "-h", help="Host to bind to"),
    ] = "",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port to bind to"),
    ] = 0,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development"),
    ] = False,
    workers: Annotated[
        int,
        typer.Option("--workers", "-w", help="Number of worker processes"),
    ] = 0,
) -> None:
    """Start the TappHA API server.

    Defaults are loaded from settings (env vars / .env).
    """
    import uvicorn

    settings = get_settings()
    resolved_host = host or settings.api_host
    resolved_port = port or settings.api_port
    resolved_workers = workers or settings.api_workers

    console.print(
        Panel(
            f"[bold green]Starting TappHA API Server[/bold green]\n"
            f"Host: {resolved_host}\n"
            f"Port: {resolved_port}\n"
            f"Workers: {resolved_workers}\n"
            f"Reload: {reload}",
            title="TappHA",
            border_style="green",
        )
    )

    uvicorn.run(
        "src.api.main:app",
        host=resolved_host,
        port=resolved_port,
        reload=reload,
        workers=resolved_workers if not reload else 1,
        log_level="info",
    )


@app.command()
def status() -> None:
    """Show system status.

    Asks the running API first and falls back to checking the database
    directly.
    """
    asyncio.run(_show_status())


async def _show_status() -> None:
    settings = get_settings()
    host = "127.0.0.1" if settings.api_host == "0.0.0.0" else settings.api_host  # noqa: S104
    headers = {}
    if settings.api_key.get_secret_value():
        headers["X-API-Key"] = settings.api_key.get_secret_value()

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(
                f"http://{host}:{settings.api_port}/api/v1/status", headers=headers
            )
        if response.status_code == 200:
            _display_status(response.json())
            return
        console.print(f"[yellow]API returned {response.status_code}[/yellow]\n")
    except httpx.ConnectError:
        console.print("[yellow]API server not running. Checking database directly...[/yellow]\n")

    await _check_database()


def _display_status(data: dict) -> None:  # type: ignore[type-arg]
    overall = data.get("status", "unknown")
    console.print(f"[bold]Overall Status:[/bold] {_colored(overall.upper())}")
    console.print(f"[bold]Environment:[/bold] {data.get('environment', 'unknown')}")
    console.print(f"[bold]Version:[/bold] {data.get('version', 'unknown')}")
    if data.get("uptime_seconds"):
        hours, remainder = divmod(int(data["uptime_seconds"]), 3600)
        minutes, seconds = divmod(remainder, 60)
        console.print(f"[bold]Uptime:[/bold] {hours}h {minutes}m {seconds}s")
    console.print()

    table = Table(title="Components", show_header=True)
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Message")
    table.add_column("Latency")
    for component in data.get("components", []):
        latency = component.get("latency_ms")
        table.add_row(
            component.get("name", "unknown"),
            _colored(component.get("status", "unknown")),
            component.get("message") or "-",
            f"{latency:.1f}ms" if latency else "-",
        )
    console.print(table)


async def _check_database() -> None:
    from sqlalchemy import text

    from src.storage import get_session

    table = Table(title="Components", show_header=True)
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Message")
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        table.add_row("database", _colored("healthy"), "PostgreSQL connected")
    except Exception as e:
        table.add_row("database", _colored("unhealthy"), str(e)[:60])
    console.print(table)


@app.command()
def version() -> None:
    """Show TappHA version information."""
    console.print(
        Panel(
            f"[bold]TappHA[/bold] v{__version__}\n"
            "Event intelligence and automation lifecycle for Home Assistant",
            title="Version",
            border_style="blue",
        )
    )


@app.command()
def connections(
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum rows to show"),
    ] = 50,
) -> None:
    """List registered Home Assistant connections."""
    asyncio.run(_list_connections(limit))


async def _list_connections(limit: int) -> None:
    from src.dal import ConnectionRepository
    from src.storage import get_session

    async with get_session() as session:
        rows = await ConnectionRepository(session).list_all(limit=limit)

    if not rows:
        console.print("[dim]No connections registered.[/dim]")
        return

    table = Table(title=f"Connections ({len(rows)})", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("URL")
    table.add_column("Status")
    table.add_column("HA Version")
    table.add_column("Last Seen")
    for conn in rows:
        table.add_row(
            conn.id[:8],
            conn.name,
            conn.url,
            _colored(conn.status.value),
            conn.home_assistant_version or "-",
            conn.last_seen_at.strftime("%Y-%m-%d %H:%M") if conn.last_seen_at else "-",
        )
    console.print(table)


@app.command()
def automations(
    state: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--state", "-s", help="Filter by lifecycle state (e.g. ACTIVE)"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum rows to show"),
    ] = 50,
) -> None:
    """List managed automations."""
    from src.storage.entities import LifecycleState

    lifecycle_state = None
    if state:
        try:
            lifecycle_state = LifecycleState[state.upper()]
        except KeyError:
            valid = ", ".join(s.name for s in LifecycleState)
            console.print(f"[red]Unknown state {state!r}. Valid states: {valid}[/red]")
            raise typer.Exit(code=1) from None

    asyncio.run(_list_automations(lifecycle_state, limit))


async def _list_automations(state: object, limit: int) -> None:
    from src.dal import ManagedAutomationRepository
    from src.storage import get_session

    async with get_session() as session:
        rows = await ManagedAutomationRepository(session).list_all(
            limit=limit, lifecycle_state=state
        )

    if not rows:
        console.print("[dim]No managed automations found.[/dim]")
        return

    table = Table(title=f"Managed Automations ({len(rows)})", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("HA ID", style="cyan")
    table.add_column("Name")
    table.add_column("State")
    table.add_column("Version", justify="right")
    for automation in rows:
        table.add_row(
            automation.id[:8],
            automation.ha_automation_id,
            automation.name,
            _colored(automation.lifecycle_state.value),
            str(automation.version),
        )
    console.print(table)


@app.command()
def cleanup(
    events: Annotated[
        bool,
        typer.Option("--events/--no-events", help="Purge events past the retention window"),
    ] = True,
) -> None:
    """Run the maintenance jobs once.

    Trims old backups and versions, expires idle wizard sessions,
    finishes due retirements and purges old events.
    """
    asyncio.run(_run_cleanup(events))


async def _run_cleanup(events: bool) -> None:
    from src.scheduler.service import (
        run_due_retirements,
        run_event_retention,
        run_lifecycle_cleanup,
        run_wizard_expiry,
    )

    lifecycle = await run_lifecycle_cleanup()
    retirements = await run_due_retirements()
    expired = await run_wizard_expiry()
    purged = await run_event_retention() if events else 0

    table = Table(title="Cleanup Results", show_header=True)
    table.add_column("Task", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Backups removed", str(lifecycle["backups"]))
    table.add_row("Versions removed", str(lifecycle["versions"]))
    table.add_row("Retirements completed", str(retirements["completed"]))
    table.add_row("Retirements failed", str(retirements["failed"]))
    table.add_row("Wizard sessions expired", str(expired))
    table.add_row("Events purged", str(purged))
    console.print(table)


if __name__ == "__main__":
    app()
