"""
Glintup CLI - Command line interface for delivery operations.

Usage:
    glintup --help                      Show all commands
    glintup schedule                    Create today's outbox jobs
    glintup schedule --dry-run          Preview without saving
    glintup dispatch                    Send due outbox jobs
    glintup health                      Print the delivery health snapshot
    glintup repair requeue-failed       Run a repair action
    glintup plan 5 --start 09:00 --end 19:00
"""

import asyncio
from datetime import datetime
from typing import get_args

import typer

from glintup.schemas.health import RepairAction

app = typer.Typer(
    name="glintup",
    help="Glintup CLI - Word delivery scheduling and dispatch",
    no_args_is_help=True,
)

REPAIR_ACTIONS: tuple[str, ...] = get_args(RepairAction)


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


def _parse_date(value: str | None):
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        _print_error(f"Invalid date {value!r}, expected YYYY-MM-DD")
        raise typer.Exit(2) from None


@app.command()
def schedule(
    date: str | None = typer.Option(None, "--date", "-d", help="Slot date (YYYY-MM-DD)"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Preview without saving to DB"),
):
    """Create outbox jobs for every active subscriber (idempotent)."""
    from glintup.jobs.schedule_today import main

    asyncio.run(main(run_date=_parse_date(date), dry_run=dry_run))


@app.command()
def dispatch(
    limit: int | None = typer.Option(None, "--limit", "-l", help="Maximum jobs to attempt"),
):
    """Send every queued job whose send time has arrived."""
    from glintup.jobs.outbox import main

    asyncio.run(main(limit=limit))


@app.command()
def health():
    """Print the delivery health snapshot and its alerts."""
    from glintup.core.database import AsyncSessionLocal
    from glintup.core.logging import setup_logging
    from glintup.services.health_monitor import get_health_snapshot

    setup_logging()

    async def run():
        async with AsyncSessionLocal() as db:
            return await get_health_snapshot(db)

    snapshot = asyncio.run(run())

    typer.echo(f"\nStatus: {snapshot.status.upper()}")
    typer.echo(f"  Scheduler ran today: {snapshot.scheduler_ran_today}")
    typer.echo(f"  Queue size:          {snapshot.queue_size}")
    typer.echo(
        f"  Failure rate:        {snapshot.failure_rate:.1%} "
        f"({snapshot.failed} failed / {snapshot.sent + snapshot.failed} attempted, "
        f"last {snapshot.window_hours}h)"
    )
    typer.echo(
        f"  Coverage:            {snapshot.coverage:.1%} "
        f"({snapshot.subscribers_covered}/{snapshot.active_subscribers})"
    )

    if not snapshot.alerts:
        _print_success("No alerts")
    for alert in snapshot.alerts:
        _print_warning(f"[{alert.level}] {alert.message} -> {alert.action}")

    if snapshot.status == "critical":
        raise typer.Exit(1)


@app.command()
def repair(
    action: str = typer.Argument(..., help=f"One of: {', '.join(REPAIR_ACTIONS)}"),
    date: str | None = typer.Option(None, "--date", "-d", help="Target date (YYYY-MM-DD)"),
):
    """Run a single repair action."""
    from glintup.core.database import AsyncSessionLocal
    from glintup.core.logging import setup_logging
    from glintup.services.repair import run_repair

    if action not in REPAIR_ACTIONS:
        _print_error(f"Unknown action {action!r}. Choose from: {', '.join(REPAIR_ACTIONS)}")
        raise typer.Exit(2)

    setup_logging()
    run_date = _parse_date(date)

    async def run():
        async with AsyncSessionLocal() as db:
            return await run_repair(db, action, run_date=run_date)

    result = asyncio.run(run())
    _print_success(f"{result.action}: {result.affected} affected")


@app.command()
def plan(
    words: int = typer.Argument(3, help="Words per day (1-5)"),
    mode: str = typer.Option("auto", "--mode", "-m", help="auto or custom"),
    start: str = typer.Option("09:00", "--start", help="Auto window start (HH:MM)"),
    end: str = typer.Option("21:00", "--end", help="Auto window end (HH:MM)"),
    times: list[str] = typer.Option([], "--time", "-t", help="Custom time (repeatable)"),
):
    """Preview the send times for a schedule configuration."""
    from glintup.core.errors import ValidationError
    from glintup.pipeline.planner import plan_delivery_times

    try:
        slots = plan_delivery_times(words, mode, start, end, times)
    except ValidationError as e:
        _print_error(str(e))
        raise typer.Exit(1) from None

    for position, slot in enumerate(slots, start=1):
        typer.echo(f"  {position}. {slot}")


@app.command()
def migrate():
    """Run database migrations (alembic upgrade head)."""
    import subprocess

    result = subprocess.run(["alembic", "upgrade", "head"], check=False)
    raise typer.Exit(result.returncode)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
):
    """Start the API server."""
    import subprocess

    cmd = ["uvicorn", "glintup.main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        cmd.append("--reload")

    subprocess.run(cmd, check=False)


if __name__ == "__main__":
    app()
