"""Scan CLI commands."""

import click
from rich.console import Console
from rich.table import Table

from accessgap.cli.context import get_engine
from accessgap.cli.output import artifacts_table, findings_table, styled_status
from accessgap.core.exceptions import AccessGapError

console = Console()


@click.group()
def scan():
    """Discover live access and reconcile cases."""
    pass


@scan.command(name="case")
@click.argument("case_id")
@click.option(
    "--no-reopen",
    is_flag=True,
    help="Do not reopen a Remediated or Closed case when access reappears",
)
@click.pass_context
def scan_case(ctx, case_id: str, no_reopen: bool):
    """Scan one case and update its status and findings.

    Example:
        accessgap scan case OBC-1a2b3c4d5e6f
    """
    try:
        engine = get_engine(ctx)
        with console.status(f"[bold green]Scanning {case_id}..."):
            summary = engine.trigger_scan(case_id, allow_reopen=not no_reopen)
    except AccessGapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()

    if not summary.ok:
        console.print(f"[yellow]⚠ Discovery failed for {summary.email}: {summary.error}[/yellow]")
        console.print(f"Case status unchanged: {styled_status(summary.status)}")
        return

    table = Table(title=f"Scan: {summary.case_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Subject", summary.email)
    table.add_row("Live artifacts", str(summary.artifacts))
    table.add_row("New findings", str(len(summary.new_findings)))
    table.add_row("Open findings", str(summary.open_findings))
    table.add_row("Status", f"{styled_status(summary.previous_status)} → {styled_status(summary.status)}")
    if summary.reopened:
        table.add_row("Reopened", "[bold red]yes[/bold red]")
    console.print(table)

    if summary.new_findings:
        console.print(findings_table(summary.new_findings, title="New Findings"))


@scan.command(name="subject")
@click.argument("email")
@click.pass_context
def scan_subject(ctx, email: str):
    """Discover a subject's live access without touching any case.

    Example:
        accessgap scan subject alice@example.com
    """
    engine = get_engine(ctx)
    with console.status(f"[bold green]Discovering access for {email}..."):
        result = engine.discovery.discover_subject_access(email)

    if not result.ok:
        console.print(f"[yellow]⚠ {result.error}[/yellow]")
        return

    subject = result.subject
    state = "[green]enabled[/green]" if subject.enabled else "[red]disabled[/red]"
    console.print(f"\n[bold]{subject.display_name or subject.email}[/bold] ({subject.email}) - {state}\n")

    if not result.artifacts:
        console.print("[green]✓ No live access found[/green]")
        return

    console.print(artifacts_table(result.artifacts))
    if result.findings:
        console.print(findings_table(result.findings, title="Findings (not persisted)"))


@scan.command(name="system")
@click.pass_context
def scan_system(ctx):
    """Scan every offboarded subject known to the HR system.

    Example:
        accessgap scan system
    """
    try:
        engine = get_engine(ctx)
        with console.status("[bold green]Scanning offboarded subjects..."):
            summary = engine.system_scan()
    except AccessGapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()

    if summary.error:
        console.print(f"[yellow]⚠ {summary.error}[/yellow]")
        return

    table = Table(title="System Scan")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Offboarded subjects", str(summary.subjects))
    table.add_row("Scanned", str(summary.scanned))
    table.add_row("Cases created", str(summary.cases_created))
    table.add_row("Skipped", str(summary.skipped))
    table.add_row("Failed", str(summary.failed))
    table.add_row("Live artifacts", str(summary.total_artifacts))
    table.add_row("New findings", str(summary.total_new_findings))
    console.print(table)

    for email, error in summary.errors.items():
        console.print(f"[red]✗[/red] {email}: {error}")
