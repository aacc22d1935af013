"""Remediation CLI command."""

import json

import click
from rich.console import Console
from rich.panel import Panel

from accessgap.cli.context import get_engine
from accessgap.cli.output import styled_status
from accessgap.core.actions import ACTION_NAMES, parse_action
from accessgap.core.exceptions import AccessGapError

console = Console()


@click.command()
@click.argument("case_id")
@click.option(
    "--action",
    "-a",
    type=click.Choice(ACTION_NAMES),
    default="full_bundle",
    help="Remediation action (default: full_bundle)",
)
@click.option("--client-id", help="Limit revoke_token to one application")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def remediate(ctx, case_id: str, action: str, client_id: str, yes: bool):
    """Revoke a case subject's lingering access.

    Example:
        accessgap remediate OBC-1a2b3c4d5e6f --action revoke_token --client-id <app-id>
    """
    try:
        remediation_action = parse_action(action, client_id=client_id)
        engine = get_engine(ctx)
        case = engine.store.get_case(case_id)
        if case is None:
            console.print(f"[red]Error: Case not found: {case_id}[/red]")
            raise click.Abort()

        if not yes:
            console.print(
                Panel(
                    "[bold red]Changes will be made in the identity provider![/bold red]\n\n"
                    f"Case: {case.id}\n"
                    f"Subject: {case.subject_email}\n"
                    f"Action: {remediation_action.name}"
                    + (f"\nApplication: {client_id}" if client_id else ""),
                    title="Remediation Confirmation",
                    border_style="red",
                )
            )
            if not click.confirm("Do you want to proceed?"):
                console.print("[yellow]Remediation cancelled[/yellow]")
                return

        with console.status("[bold green]Remediating..."):
            result = engine.execute_remediation(case.id, remediation_action)
    except AccessGapError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()

    outcome = result.outcome
    if outcome.skipped:
        console.print("[yellow]⚠ Identity provider not configured; nothing was revoked[/yellow]")
    elif outcome.success:
        console.print(f"[green]✓ {result.action} completed for {case.subject_email}[/green]")
    else:
        console.print(f"[red]✗ {result.action} failed: {outcome.error}[/red]")
        if outcome.is_permission_error:
            console.print("[yellow]The application lacks the permissions needed for this action[/yellow]")

    console.print(f"Case status: {styled_status(result.status)}")
    if result.closed_findings:
        console.print(f"Closed findings: {', '.join(result.closed_findings)}")
    if ctx.obj.get("verbose") and outcome.details:
        console.print_json(json.dumps(outcome.details, default=str))
