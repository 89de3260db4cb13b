"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "QUEUED": "yellow",
    "RUNNING": "cyan",
    "SUCCEEDED": "green",
    "FAILED": "red",
    "COMPENSATED": "magenta",
    "COMPENSATION_FAILED": "bold red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def create_job_table(job: dict[str, Any]) -> Table:
    """Create a formatted table for a job status snapshot"""
    table = Table(title=f"Job {job.get('job_id', '')}", box=box.ROUNDED, show_header=False)

    table.add_column("Field", style="bold")
    table.add_column("Value")

    status = job.get("status", "")
    style = STATUS_STYLES.get(status, "white")

    table.add_row("Type", job.get("type") or "-")
    table.add_row("Status", f"[{style}]{status}[/{style}]")
    table.add_row("Attempts", str(job.get("attempts", 0)))
    table.add_row("Last Error", job.get("last_error") or "-")
    table.add_row("Started", job.get("started_at") or "-")
    table.add_row("Completed", job.get("completed_at") or "-")
    if job.get("next_run_at"):
        table.add_row("Next Retry", job["next_run_at"])

    return table


def create_health_panel(health: dict[str, Any], base_url: str) -> Panel:
    """Create formatted panel for service health"""
    queue = health.get("queue", {})
    normal = queue.get("normal_pool", {})
    compensation = queue.get("compensation_pool", {})

    content = (
        f"🚀 [green]Connected Successfully![/green]\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• API URL: [blue]{base_url}[/blue]\n"
        f"• Handlers: [magenta]{', '.join(health.get('handlers', [])) or '-'}[/magenta]\n\n"
        f"• Normal pool: {normal.get('in_flight', 0)}/"
        f"{normal.get('workers', 0) + normal.get('queue_capacity', 0)} in flight\n"
        f"• Compensation pool: {compensation.get('in_flight', 0)}/"
        f"{compensation.get('workers', 0) + compensation.get('queue_capacity', 0)} in flight\n"
        f"• Pending retries: {queue.get('pending_retries', 0)}"
    )

    return Panel(content, title="System Status", border_style="green")
