"""Finding CLI commands."""

from typing import Optional

import click
from rich.console import Console

from accessgap.cli.context import get_engine
from accessgap.cli.output import findings_table
from accessgap.core.exceptions import AccessGapError
from accessgap.core.models import FindingKind

console = Console()


@click.group()
def findings():
    """Review and remediate findings."""
    pass


@findings.command(name="list")
@click.option("--case", "case_id", help="Only findings of this case")
@click.option(
    "--kind",
    type=click.Choice([k.value for k in FindingKind]),
    help="Filter by finding kind",
)
@click.option("--open/--all", "open_only", default=True, help="Only open findings (default)")
@click.pass_context
def list_findings(ctx, case_id: Optional[str], kind: Optional[str], open_only: bool):
    """List findings."""
    engine = get_engine(ctx)
    rows = engine.store.list_findings(
        case_id=case_id,
        kind=FindingKind(kind) if kind else None,
        open_only=open_only,
    )
    if not rows:
        console.print("[green]No findings[/green]")
        return
    console.print(findings_table(rows, title=f"Findings ({len(rows)})"))


@findings.command(name="remediate")
@click.argument("finding_id")
@click.pass_context
def remediate_finding(ctx, finding_id: str):
    """Close a finding and revoke the access behind it.

    The finding is closed even when the provider call fails.
    """
    try:
        report = get_engine(ctx).remediate_finding(finding_id)
    except AccessGapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()

    console.print(f"[green]✓[/green] Finding {report.finding.id} closed")
    if report.enforcement_error:
        console.print(f"[yellow]⚠ Enforcement failed: {report.enforcement_error}[/yellow]")
    elif report.enforcement is not None and report.enforcement.skipped:
        console.print("[yellow]⚠ Identity provider not configured; nothing was revoked[/yellow]")
    elif report.enforcement is not None:
        console.print(f"[green]✓[/green] {report.enforcement.action} enforced")
