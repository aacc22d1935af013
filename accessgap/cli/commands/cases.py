"""Offboarding case CLI commands."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from accessgap.cli.context import get_engine
from accessgap.cli.output import artifacts_table, findings_table, fmt_dt, styled_status
from accessgap.core.exceptions import AccessGapError
from accessgap.core.models import CaseStatus, EventType

console = Console()


@click.group()
def cases():
    """Manage offboarding cases."""
    pass


@cases.command(name="list")
@click.option(
    "--status",
    "-s",
    type=click.Choice([s.value for s in CaseStatus]),
    help="Filter by status",
)
@click.option("--email", "-e", help="Filter by subject email")
@click.pass_context
def list_cases(ctx, status: Optional[str], email: Optional[str]):
    """List offboarding cases."""
    engine = get_engine(ctx)
    rows = engine.store.list_cases(status=CaseStatus(status) if status else None, email=email)

    if not rows:
        console.print("[yellow]No cases found[/yellow]")
        return

    table = Table(title=f"Cases ({len(rows)})")
    table.add_column("ID", style="cyan")
    table.add_column("Subject", style="white")
    table.add_column("Event", style="dim")
    table.add_column("Status")
    table.add_column("Scheduled", style="dim")
    table.add_column("Created", style="dim")

    for case in rows:
        table.add_row(
            case.id,
            case.subject_email,
            case.event_type.value,
            styled_status(case.status),
            fmt_dt(case.scheduled_remediation_date),
            fmt_dt(case.created_at),
        )
    console.print(table)


@cases.command(name="show")
@click.argument("case_id")
@click.pass_context
def show_case(ctx, case_id: str):
    """Show a case with its findings and last access snapshot."""
    engine = get_engine(ctx)
    case = engine.store.get_case(case_id)
    if case is None:
        console.print(f"[red]Error: Case not found: {case_id}[/red]")
        raise click.Abort()

    console.print(
        Panel(
            f"Subject: {case.subject_name or '-'} ({case.subject_email})\n"
            f"Event: {case.event_type.value}\n"
            f"Effective: {fmt_dt(case.effective_date)}\n"
            f"Status: {styled_status(case.status)}\n"
            f"Scheduled remediation: {fmt_dt(case.scheduled_remediation_date)}\n"
            f"Reminders sent: 7d={'yes' if case.notify_1w_sent else 'no'} "
            f"1d={'yes' if case.notify_1d_sent else 'no'}"
            + (f"\n\n{case.notes}" if case.notes else ""),
            title=case.id,
            border_style="cyan",
        )
    )

    findings = engine.store.findings_for_case(case.id)
    if findings:
        console.print(findings_table(findings))

    artifacts = engine.store.list_artifacts(case_id=case.id)
    if artifacts:
        console.print(artifacts_table(artifacts, title="Last Access Snapshot"))


@cases.command(name="create")
@click.argument("email")
@click.option("--name", "-n", default="", help="Subject display name")
@click.option(
    "--event-type",
    type=click.Choice([e.value for e in EventType]),
    default=EventType.OFFBOARD.value,
    help="Event type (default: Offboard)",
)
@click.option("--notes", default="", help="Free-text notes")
@click.option("--scan", "scan_now", is_flag=True, help="Scan immediately after creating")
@click.pass_context
def create_case(ctx, email: str, name: str, event_type: str, notes: str, scan_now: bool):
    """Open a case for a subject (returns the existing open case if any)."""
    try:
        engine = get_engine(ctx)
        case = engine.create_case_for_subject(
            email,
            subject_name=name,
            event_type=EventType(event_type),
            notes=notes,
        )
        console.print(f"[green]✓[/green] Case {case.id} for {case.subject_email} ({styled_status(case.status)})")

        if scan_now:
            summary = engine.trigger_scan(case.id)
            if summary.ok:
                console.print(
                    f"  Scanned: {summary.artifacts} artifact(s), "
                    f"{len(summary.new_findings)} new finding(s), status {styled_status(summary.status)}"
                )
            else:
                console.print(f"[yellow]  Scan failed: {summary.error}[/yellow]")
    except AccessGapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()


@cases.command(name="schedule")
@click.argument("case_id")
@click.option("--at", "at", type=click.DateTime(), help="Remediation time (UTC)")
@click.option("--in-days", type=int, help="Remediate this many days from now")
@click.pass_context
def schedule_case(ctx, case_id: str, at: Optional[datetime], in_days: Optional[int]):
    """Schedule a full-bundle remediation for a case.

    Example:
        accessgap cases schedule OBC-1a2b3c4d5e6f --in-days 7
    """
    if (at is None) == (in_days is None):
        console.print("[red]Error: Specify exactly one of --at or --in-days[/red]")
        raise click.Abort()

    when = at.replace(tzinfo=timezone.utc) if at else datetime.now(timezone.utc) + timedelta(days=in_days)
    try:
        case = get_engine(ctx).schedule_remediation(case_id, when)
    except AccessGapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()

    console.print(f"[green]✓[/green] {case.id} scheduled for {fmt_dt(case.scheduled_remediation_date)} UTC")


@cases.command(name="close")
@click.argument("case_id")
@click.option("--note", help="Closing note appended to the case")
@click.pass_context
def close_case(ctx, case_id: str, note: Optional[str]):
    """Close a case."""
    try:
        case = get_engine(ctx).close_case(case_id, note=note)
    except AccessGapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()

    console.print(f"[green]✓[/green] {case.id} closed")


@cases.command(name="offboard")
@click.argument("email")
@click.pass_context
def offboard(ctx, email: str):
    """Apply the offboarding automation to a subject's HR record.

    Creates the case and, depending on settings, scans and remediates it.
    """
    engine = get_engine(ctx)
    if engine.hr is None:
        console.print("[red]Error: HR directory not configured[/red]")
        raise click.Abort()

    try:
        record = engine.hr.find_by_email(email)
        if record is None:
            console.print(f"[red]Error: No HR record for {email}[/red]")
            raise click.Abort()

        case = engine.handle_offboarding(record)
    except AccessGapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()

    if case is None:
        console.print("[yellow]Case creation on leave is disabled (auto_create_case_on_leave)[/yellow]")
        return
    console.print(f"[green]✓[/green] Case {case.id} for {case.subject_email} ({styled_status(case.status)})")
