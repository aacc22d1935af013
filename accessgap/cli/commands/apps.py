"""Application-centric CLI commands."""

from typing import Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from accessgap.cli.context import get_engine
from accessgap.cli.output import styled_risk
from accessgap.core.exceptions import AccessGapError

console = Console()


@click.group()
def apps():
    """Applications that still hold access for offboarded subjects."""
    pass


@apps.command(name="list")
@click.option("--email", "-e", "emails", multiple=True, help="Limit to these subjects (repeatable)")
@click.pass_context
def list_apps(ctx, emails: Tuple[str, ...]):
    """List applications with live grants or role assignments.

    Defaults to every subject with an open case or an offboarded HR record.
    """
    engine = get_engine(ctx)
    with console.status("[bold green]Collecting live access..."):
        rows = engine.list_active_apps(list(emails) or None)

    if not rows:
        console.print("[green]No applications with live access[/green]")
        return

    table = Table(title=f"Active Applications ({len(rows)})")
    table.add_column("Application", style="white")
    table.add_column("Client ID", style="cyan")
    table.add_column("Kind", style="dim")
    table.add_column("Users", justify="right")
    table.add_column("Grants", justify="right")
    table.add_column("Risk")

    for app in rows:
        table.add_row(
            app.display_name[:40],
            app.client_id,
            app.kind.value,
            str(len(app.users)),
            str(app.grants),
            styled_risk(app.risk),
        )
    console.print(table)


@apps.command(name="revoke")
@click.argument("client_id")
@click.option("--email", "-e", "emails", multiple=True, help="Limit to these subjects (repeatable)")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def revoke_app(ctx, client_id: str, emails: Tuple[str, ...], yes: bool):
    """Revoke one application's grants from every affected subject.

    Example:
        accessgap apps revoke 00000000-0000-0000-0000-000000000000
    """
    if not yes:
        console.print(
            Panel(
                f"[bold red]All grants for {client_id} will be revoked![/bold red]",
                title="Global App Removal",
                border_style="red",
            )
        )
        if not click.confirm("Do you want to proceed?"):
            console.print("[yellow]Removal cancelled[/yellow]")
            return

    try:
        engine = get_engine(ctx)
        with console.status("[bold green]Revoking..."):
            result = engine.revoke_app_for_all(client_id, list(emails) or None)
    except AccessGapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()

    if not result.outcomes:
        console.print(f"[yellow]No subject holds a grant for {client_id}[/yellow]")
        return

    for email, outcome in result.outcomes.items():
        if outcome.success:
            console.print(f"[green]✓[/green] {email}")
        else:
            console.print(f"[red]✗[/red] {email}: {outcome.error}")
    console.print(f"\nRevoked for {result.succeeded} subject(s), {result.failed} failed")
