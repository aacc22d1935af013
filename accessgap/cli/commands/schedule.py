"""Scheduler CLI commands."""

import click
from rich.console import Console
from rich.table import Table

from accessgap.cli.context import get_engine
from accessgap.core.scheduler import TASK_ORDER, ReconciliationScheduler

console = Console()


@click.group()
def schedule():
    """Run the background scheduler."""
    pass


@schedule.command(name="run")
@click.option("--once", is_flag=True, help="Run every task once and exit")
@click.pass_context
def run_schedule(ctx, once: bool):
    """Run scans, due remediations and reminders on their intervals.

    Example:
        accessgap schedule run
    """
    scheduler = ReconciliationScheduler(get_engine(ctx))

    if once:
        ran = scheduler.run_once()
        table = Table(title="Scheduler Run")
        table.add_column("Task", style="cyan")
        table.add_column("Ran")
        for task in TASK_ORDER:
            table.add_row(task, "[green]yes[/green]" if ran[task] else "[dim]no[/dim]")
        console.print(table)
        return

    console.print("[bold green]Scheduler started[/bold green] (Ctrl+C to stop)")
    scheduler.run_forever()


@schedule.command(name="intervals")
@click.pass_context
def show_intervals(ctx):
    """Show the configured task intervals."""
    current = get_engine(ctx).settings

    table = Table(title="Scheduler Intervals")
    table.add_column("Task", style="cyan")
    table.add_column("Interval", style="green")
    table.add_column("Enabled")
    table.add_row(
        "background_scan",
        current.background_scan_interval,
        "[green]yes[/green]" if current.background_scan_enabled else "[dim]no[/dim]",
    )
    table.add_row("remediation_check", current.remediation_check_interval, "[green]yes[/green]")
    table.add_row("daily_scan", "Daily", "[green]yes[/green]")
    notifications = current.notify_on_new_findings or current.notify_on_remediation
    table.add_row("notifications", "Daily", "[green]yes[/green]" if notifications else "[dim]no[/dim]")
    console.print(table)
