"""Unified subject view."""

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from accessgap.cli.context import get_engine
from accessgap.cli.output import artifacts_table, findings_table, fmt_dt, styled_status

console = Console()

SOURCE_STYLES = {"ok": "green", "unavailable": "red", "not_configured": "dim"}


@click.command()
@click.argument("email")
@click.pass_context
def subject(ctx, email: str):
    """Show everything known about a subject across HR, identity provider and cases."""
    engine = get_engine(ctx)
    with console.status(f"[bold green]Loading {email}..."):
        overview = engine.subject_overview(email)

    sources = "  ".join(
        f"{name}: [{SOURCE_STYLES.get(state, 'white')}]{state}[/{SOURCE_STYLES.get(state, 'white')}]"
        for name, state in overview.sources.items()
    )
    lines = [f"Sources: {sources}"]
    if overview.subject is not None:
        lines.insert(0, f"Name: {overview.subject.display_name or '-'}")
        lines.insert(1, f"Account: {'enabled' if overview.subject.enabled else 'disabled'}")
    if overview.hr_record is not None:
        lines.append(
            f"HR: {overview.hr_record.status}"
            + (f", left {overview.hr_record.effective_date}" if overview.hr_record.effective_date else "")
        )
    console.print(Panel("\n".join(lines), title=overview.email, border_style="cyan"))

    if overview.live is not None and overview.live.ok and overview.live.artifacts:
        console.print(artifacts_table(overview.live.artifacts, title="Live Access"))

    if overview.cases:
        table = Table(title="Cases")
        table.add_column("ID", style="cyan")
        table.add_column("Status")
        table.add_column("Created", style="dim")
        for case in overview.cases:
            table.add_row(case.id, styled_status(case.status), fmt_dt(case.created_at))
        console.print(table)

    if overview.findings:
        console.print(findings_table(overview.findings))
