"""Audit log CLI command."""

from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from accessgap.cli.context import get_engine
from accessgap.cli.output import fmt_dt

console = Console()


@click.command()
@click.option("--email", "-e", help="Filter by target email")
@click.option("--action", "-a", "action_type", help="Filter by action type (e.g. Scan, Remediation)")
@click.option("--limit", "-n", type=int, default=50, help="Maximum entries (default: 50)")
@click.pass_context
def audit(ctx, email: Optional[str], action_type: Optional[str], limit: int):
    """Show the audit log, newest first."""
    entries = get_engine(ctx).store.list_audit_logs(target_email=email, action_type=action_type, limit=limit)
    if not entries:
        console.print("[yellow]No audit entries[/yellow]")
        return

    table = Table(title=f"Audit Log ({len(entries)})")
    table.add_column("Time", style="dim")
    table.add_column("Actor", style="dim")
    table.add_column("Action", style="cyan")
    table.add_column("Target", style="white")
    table.add_column("Type", style="dim")
    table.add_column("Result")

    for entry in entries:
        color = "green" if entry.result == "Success" else "yellow" if entry.result == "Partial" else "red"
        table.add_row(
            fmt_dt(entry.timestamp),
            entry.actor,
            entry.action_type,
            entry.target_email,
            entry.remediation_type or "-",
            f"[{color}]{entry.result}[/{color}]",
        )
    console.print(table)
