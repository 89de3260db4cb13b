"""Task Queue CLI - Main Entry Point"""

import json
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from .client.endpoints import QueueFullError, TaskQueueClient, TaskQueueError
from .utils.formatting import (
    create_health_panel,
    create_job_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()

# Create main Typer app
app = typer.Typer(
    name="taskqueue",
    help="⚙️ Task Queue - submit and track asynchronous jobs",
    rich_markup_mode="rich",
)

DEFAULT_API_URL = "http://localhost:8080"


def _api_url(ctx: typer.Context) -> str:
    return (ctx.obj or {}).get("api_url", DEFAULT_API_URL)


@app.command()
def status(ctx: typer.Context):
    """📊 Check system status and worker pool usage"""
    base_url = _api_url(ctx)
    print_info(f"Checking connection to: {base_url}")

    try:
        with TaskQueueClient(base_url) as client:
            health = client.health_check()
            console.print(create_health_panel(health, base_url))

    except Exception as e:
        print_error(f"Failed to connect: {e}")
        console.print(
            Panel(
                f"🚫 [red]Connection Failed[/red]\n\n"
                f"Make sure the Task Queue API is running at:\n"
                f"[blue]{base_url}[/blue]\n\n"
                f"You can point the CLI elsewhere with:\n"
                f"[cyan]taskqueue --api-url <url> status[/cyan]",
                title="Connection Error",
                border_style="red",
            )
        )
        raise typer.Exit(1)


@app.command()
def submit(
    ctx: typer.Context,
    job_type: str = typer.Argument(..., metavar="TYPE", help="Registered job type"),
    payload: str = typer.Option("{}", "--payload", "-p", help="Job payload as JSON"),
    idempotency_key: Optional[str] = typer.Option(
        None, "--idempotency-key", "-k", help="Deduplicate repeated submissions"
    ),
):
    """🚀 Submit a job for asynchronous execution"""
    try:
        payload_data = json.loads(payload)
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON payload: {e}")
        raise typer.Exit(2)

    if not isinstance(payload_data, dict):
        print_error("Payload must be a JSON object")
        raise typer.Exit(2)

    try:
        with TaskQueueClient(_api_url(ctx)) as client:
            result = client.submit_job(job_type, payload_data, idempotency_key)
    except QueueFullError as e:
        print_warning(f"Queue is full, try again later ({e})")
        raise typer.Exit(3)
    except TaskQueueError as e:
        print_error(f"Submit failed: {e}")
        raise typer.Exit(1)

    print_success(f"Job accepted: {result['job_id']} ({result['status']})")


@app.command()
def job(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job id returned by submit"),
):
    """🔎 Show the current status of a job"""
    try:
        with TaskQueueClient(_api_url(ctx)) as client:
            snapshot = client.get_job(job_id)
    except TaskQueueError as e:
        print_error(f"Lookup failed: {e}")
        raise typer.Exit(1)

    console.print(create_job_table(snapshot))


@app.command()
def wait(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job id returned by submit"),
    timeout: float = typer.Option(60.0, "--timeout", "-t", help="Seconds to wait"),
    interval: float = typer.Option(0.5, "--interval", "-i", help="Polling interval"),
):
    """⏳ Poll a job until it reaches a terminal status"""
    try:
        with TaskQueueClient(_api_url(ctx)) as client:
            snapshot = client.wait_for_job(job_id, timeout=timeout, interval=interval)
    except TaskQueueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(create_job_table(snapshot))
    if snapshot.get("status") != "SUCCEEDED":
        raise typer.Exit(4)


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(
        Panel(
            f"⚙️ [bold cyan]Task Queue CLI[/bold cyan]\n\n"
            f"• Version: [green]{__version__}[/green]\n"
            f"• Type: [yellow]Command Line Interface[/yellow]",
            title="Version Info",
            border_style="cyan",
        )
    )


@app.callback()
def main(
    ctx: typer.Context,
    api_url: str = typer.Option(
        DEFAULT_API_URL,
        "--api-url",
        envvar="TASKQUEUE_API_URL",
        help="Base URL of the Task Queue API",
    ),
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", help="Show version and exit"
    ),
):
    """
    ⚙️ Task Queue CLI

    Submit jobs, poll their status and inspect worker pool usage.
    """
    if version:
        from . import __version__

        console.print(f"Task Queue CLI v{__version__}")
        raise typer.Exit()
    ctx.obj = {"api_url": api_url}


if __name__ == "__main__":
    app()
