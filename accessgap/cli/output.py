"""Shared rich rendering helpers for CLI commands."""

from datetime import datetime
from typing import Iterable, Optional

from rich.table import Table

from accessgap.core.models import Artifact, CaseStatus, Finding, RiskTier

STATUS_STYLES = {
    CaseStatus.DRAFT: "white",
    CaseStatus.SCHEDULED: "cyan",
    CaseStatus.ALL_CLEAR: "green",
    CaseStatus.GAPS_FOUND: "red",
    CaseStatus.REMEDIATED: "green",
    CaseStatus.CLOSED: "dim",
}

RISK_STYLES = {
    RiskTier.LOW: "green",
    RiskTier.MEDIUM: "yellow",
    RiskTier.HIGH: "red",
    RiskTier.CRITICAL: "bold red",
}


def fmt_dt(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def styled_status(status: CaseStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def styled_risk(risk) -> str:
    style = RISK_STYLES.get(risk, "white")
    return f"[{style}]{risk.value}[/{style}]"


def artifacts_table(artifacts: Iterable[Artifact], title: str = "Access Artifacts") -> Table:
    table = Table(title=title)
    table.add_column("Kind", style="cyan")
    table.add_column("Application", style="white")
    table.add_column("Client ID", style="dim")
    table.add_column("Risk")
    table.add_column("Status")
    table.add_column("Scopes", style="dim")

    for artifact in artifacts:
        scopes = ", ".join(artifact.scopes[:4])
        if len(artifact.scopes) > 4:
            scopes += f" (+{len(artifact.scopes) - 4})"
        table.add_row(
            artifact.kind.value,
            artifact.app_display_name[:40],
            artifact.client_id,
            styled_risk(artifact.risk),
            artifact.status.value,
            scopes,
        )
    return table


def findings_table(findings: Iterable[Finding], title: str = "Findings") -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Case", style="dim")
    table.add_column("Kind", style="white")
    table.add_column("Severity")
    table.add_column("Summary", style="white")
    table.add_column("State")

    for finding in findings:
        table.add_row(
            finding.id or "-",
            finding.case_id or "-",
            finding.kind.value,
            styled_risk(RiskTier(finding.severity.value)),
            finding.summary,
            "[red]open[/red]" if finding.is_open else f"[dim]closed {fmt_dt(finding.closed_at)}[/dim]",
        )
    return table
