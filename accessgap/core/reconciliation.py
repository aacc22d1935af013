"""Reconciliation engine: owns the offboarding case state machine.

Discovery supplies a snapshot of live access; this module turns it into
persisted findings and a case status, drives remediation, and merges the
HR system, the identity provider and the case store into one view.

Rescan policy, applied after every scan and remediation:

* no live artifacts and no open findings: a scan moves Draft, Scheduled and
  All Clear to All Clear and Gaps Found to Remediated; a remediation moves
  Draft, Scheduled and Gaps Found to Remediated.
* otherwise the case is Gaps Found, unless it is Scheduled with a future
  date. A Remediated or Closed case that holds revocable access (OAuth
  grants or app-role assignments) again is reopened with an
  AccessReappeared finding; until then it takes no new findings.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

import structlog

from accessgap.core.actions import (
    FullBundle,
    RemediationAction,
    RemoveAppRoles,
    RevokeToken,
    SignOut,
    parse_action,
)
from accessgap.core.discovery import DiscoveryResult, DiscoveryService
from accessgap.core.exceptions import (
    CaseNotFoundError,
    FindingNotFoundError,
    InvalidActionError,
    InvalidTransitionError,
    StoreError,
)
from accessgap.core.hr.base import HRDirectory, HRRecord
from accessgap.core.models import (
    Artifact,
    ArtifactKind,
    ArtifactStatus,
    AuditEntry,
    Case,
    CaseStatus,
    EngineSettings,
    EventType,
    Finding,
    FindingKind,
    RiskTier,
    Severity,
    Subject,
    utcnow,
)
from accessgap.core.remediation import RemediationOrchestrator, RemediationOutcome
from accessgap.core.risk import highest_tier
from accessgap.integrations.email import EmailAlerter, FindingAlert
from accessgap.storage.base import CaseStore

logger = structlog.get_logger(__name__)

# Findings produced by discovery; these close once discovery stops producing them
DERIVED_KINDS = {FindingKind.LINGERING_OAUTH_GRANT, FindingKind.HIGH_RISK_LINGERING_ACCESS}

SETTLED_STATUSES = (CaseStatus.REMEDIATED, CaseStatus.CLOSED)

ALERT_SEVERITIES = {Severity.HIGH, Severity.CRITICAL}

ENFORCEMENT_BY_KIND = {
    FindingKind.LINGERING_OAUTH_GRANT: "revoke_all_grants",
    FindingKind.HIGH_RISK_LINGERING_ACCESS: "revoke_all_grants",
    FindingKind.ACCESS_REAPPEARED: "revoke_all_grants",
    FindingKind.POST_OFFBOARD_LOGIN: "revoke_sessions",
}


class Trigger(str, Enum):
    SCAN = "scan"
    REMEDIATION = "remediation"


@dataclass
class ScanSummary:
    """Outcome of scanning one case."""

    case_id: str
    email: str
    previous_status: CaseStatus
    status: CaseStatus
    artifacts: int = 0
    new_findings: List[Finding] = field(default_factory=list)
    open_findings: int = 0
    reopened: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SystemScanSummary:
    subjects: int = 0
    scanned: int = 0
    cases_created: int = 0
    skipped: int = 0
    failed: int = 0
    total_artifacts: int = 0
    total_new_findings: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    results: List[ScanSummary] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RemediationResult:
    case_id: str
    action: str
    outcome: RemediationOutcome
    status: CaseStatus
    closed_findings: List[str] = field(default_factory=list)
    verified: bool = False

    @property
    def success(self) -> bool:
        return self.outcome.success


@dataclass
class FindingRemediation:
    finding: Finding
    enforcement: Optional[RemediationOutcome] = None
    enforcement_error: Optional[str] = None


@dataclass
class SubjectOverview:
    """Merged view of a subject across HR, identity provider and store."""

    email: str
    subject: Optional[Subject]
    hr_record: Optional[HRRecord]
    live: Optional[DiscoveryResult]
    cases: List[Case]
    findings: List[Finding]
    audit: List[AuditEntry]
    sources: Dict[str, str]


@dataclass
class ActiveApp:
    client_id: str
    display_name: str
    kind: ArtifactKind
    users: Set[str] = field(default_factory=set)
    grants: int = 0
    risk: RiskTier = RiskTier.LOW
    scopes: Set[str] = field(default_factory=set)


@dataclass
class GlobalRemovalResult:
    client_id: str
    outcomes: Dict[str, RemediationOutcome] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.success)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded


class ReconciliationEngine:
    """Sole writer of case status.

    Business-level conditions (unknown subject, provider degraded) never
    raise from scans; an unknown case reference raises CaseNotFoundError
    and store failures propagate as StoreError.
    """

    def __init__(
        self,
        store: CaseStore,
        discovery: DiscoveryService,
        orchestrator: RemediationOrchestrator,
        hr: Optional[HRDirectory] = None,
        alerter: Optional[EmailAlerter] = None,
        actor: str = "system",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.discovery = discovery
        self.orchestrator = orchestrator
        self.hr = hr
        self.alerter = alerter
        self.actor = actor
        self.clock = clock or utcnow

    @property
    def settings(self) -> EngineSettings:
        return self.store.get_settings()

    def _get_case(self, case_id: str) -> Case:
        case = self.store.get_case(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        return case

    def _audit(
        self,
        action_type: str,
        target_email: str,
        result: str,
        remediation_type: Optional[str] = None,
        request: Optional[Dict[str, Any]] = None,
        response: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        return self.store.log_action(
            AuditEntry(
                actor=self.actor,
                action_type=action_type,
                target_email=target_email,
                result=result,
                remediation_type=remediation_type,
                request=request,
                response=response,
                timestamp=self.clock(),
            )
        )

    # Scanning

    def trigger_scan(self, case_id: str, allow_reopen: bool = True) -> ScanSummary:
        """Discover the case subject's access and reconcile the case.

        Args:
            case_id: Case to scan
            allow_reopen: False suppresses reopening a Remediated/Closed case;
                the suppression is logged

        Raises:
            CaseNotFoundError: If the case does not exist
        """
        case = self._get_case(case_id)
        logger.info("case_scan_started", case_id=case.id, email=case.subject_email, status=case.status.value)

        result = self.discovery.discover_subject_access(case.subject_email, case.id)

        if not result.ok:
            logger.warning("case_scan_discovery_failed", case_id=case.id, error=result.error)
            self._audit(
                "Scan",
                case.subject_email,
                "Failed",
                request={"case_id": case.id},
                response={"error": result.error, "status": case.status.value},
            )
            return ScanSummary(
                case_id=case.id,
                email=case.subject_email,
                previous_status=case.status,
                status=case.status,
                error=result.error,
            )

        summary = self._reconcile(case, result, Trigger.SCAN, allow_reopen)

        self._audit(
            "Scan",
            case.subject_email,
            "Success",
            request={"case_id": case.id},
            response={
                "artifacts": summary.artifacts,
                "new_findings": len(summary.new_findings),
                "open_findings": summary.open_findings,
                "previous_status": summary.previous_status.value,
                "status": summary.status.value,
                "reopened": summary.reopened,
            },
        )
        self._alert_new_findings(case, summary.new_findings)

        logger.info(
            "case_scan_complete",
            case_id=case.id,
            artifacts=summary.artifacts,
            new_findings=len(summary.new_findings),
            status=summary.status.value,
        )
        return summary

    def _reconcile(
        self,
        case: Case,
        result: DiscoveryResult,
        trigger: Trigger,
        allow_reopen: bool = True,
    ) -> ScanSummary:
        active = result.active_artifacts
        revocable = result.revocable_artifacts
        reopening = self._should_reopen(case, len(revocable), allow_reopen)

        # A settled case only takes new findings when it is reopened
        if case.status in SETTLED_STATUSES and not reopening:
            new_findings: List[Finding] = []
        else:
            new_findings = self._merge_findings(case, result.findings)

        if trigger == Trigger.REMEDIATION:
            self._close_resolved_findings(case, result)

        self.store.replace_artifacts(case.id, active)

        patch: Dict[str, Any] = {}
        if result.subject is not None:
            if not case.subject_id:
                patch["subject_id"] = result.subject.id
            if not case.subject_name and result.subject.display_name:
                patch["subject_name"] = result.subject.display_name

        status, reopen_finding = self._apply_rescan_policy(case, len(active), len(revocable), trigger, reopening)
        if reopen_finding is not None:
            new_findings.append(reopen_finding)

        if status != case.status:
            patch["status"] = status
            logger.info(
                "case_status_changed",
                case_id=case.id,
                previous=case.status.value,
                status=status.value,
                trigger=trigger.value,
            )
        if patch:
            self.store.update_case(case.id, **patch)

        return ScanSummary(
            case_id=case.id,
            email=case.subject_email,
            previous_status=case.status,
            status=status,
            artifacts=len(active),
            new_findings=new_findings,
            open_findings=len(self.store.open_findings_for_case(case.id)),
            reopened=reopen_finding is not None,
        )

    def _merge_findings(self, case: Case, discovered: Iterable[Finding]) -> List[Finding]:
        """Persist discovered findings, skipping kinds already open on the case."""
        open_kinds = {f.kind for f in self.store.open_findings_for_case(case.id)}
        created = []
        for finding in discovered:
            if finding.kind in open_kinds:
                continue
            finding.case_id = case.id
            created.append(self.store.create_finding(finding))
            open_kinds.add(finding.kind)
        return created

    def _close_resolved_findings(self, case: Case, result: DiscoveryResult) -> List[str]:
        produced = result.finding_kinds()
        no_access = not result.revocable_artifacts
        closed = []
        for finding in self.store.open_findings_for_case(case.id):
            resolved = finding.kind in DERIVED_KINDS and finding.kind not in produced
            if finding.kind == FindingKind.ACCESS_REAPPEARED and no_access:
                resolved = True
            if resolved:
                self.store.close_finding(finding.id)
                closed.append(finding.id)
        if closed:
            logger.info("findings_resolved", case_id=case.id, closed=len(closed))
        return closed

    def _should_reopen(self, case: Case, revocable_count: int, allow_reopen: bool) -> bool:
        """True when a Remediated or Closed case holds revocable access again.

        Licensed apps alone never reopen a case: no remediation action can
        remove them.
        """
        if case.status not in SETTLED_STATUSES or revocable_count == 0:
            return False
        if not allow_reopen:
            logger.warning(
                "case_reopen_suppressed",
                case_id=case.id,
                status=case.status.value,
                artifacts=revocable_count,
            )
            return False
        return True

    def _apply_rescan_policy(
        self,
        case: Case,
        artifact_count: int,
        revocable_count: int,
        trigger: Trigger,
        reopening: bool,
    ):
        """Return the recomputed status and any reopen finding created."""
        open_findings = self.store.open_findings_for_case(case.id)

        if artifact_count == 0 and not open_findings:
            if trigger == Trigger.SCAN:
                transitions = {
                    CaseStatus.DRAFT: CaseStatus.ALL_CLEAR,
                    CaseStatus.SCHEDULED: CaseStatus.ALL_CLEAR,
                    CaseStatus.ALL_CLEAR: CaseStatus.ALL_CLEAR,
                    CaseStatus.GAPS_FOUND: CaseStatus.REMEDIATED,
                }
            else:
                transitions = {
                    CaseStatus.DRAFT: CaseStatus.REMEDIATED,
                    CaseStatus.SCHEDULED: CaseStatus.REMEDIATED,
                    CaseStatus.GAPS_FOUND: CaseStatus.REMEDIATED,
                }
            return transitions.get(case.status, case.status), None

        if case.status in SETTLED_STATUSES:
            if not reopening:
                return case.status, None
            return CaseStatus.GAPS_FOUND, self._reopen(case, revocable_count, open_findings)

        if case.status == CaseStatus.SCHEDULED and self._scheduled_in_future(case):
            return CaseStatus.SCHEDULED, None

        return CaseStatus.GAPS_FOUND, None

    def _reopen(self, case: Case, artifact_count: int, open_findings: List[Finding]) -> Optional[Finding]:
        logger.warning(
            "case_reopened",
            case_id=case.id,
            previous_status=case.status.value,
            artifacts=artifact_count,
        )
        if any(f.kind == FindingKind.ACCESS_REAPPEARED for f in open_findings):
            return None
        return self.store.create_finding(
            Finding(
                kind=FindingKind.ACCESS_REAPPEARED,
                severity=Severity.HIGH,
                summary=(
                    f"{artifact_count} access artifact(s) reappeared for {case.subject_email} "
                    f"after the case was {case.status.value}"
                ),
                recommended_action="Re-run remediation and investigate how access was restored",
                case_id=case.id,
            )
        )

    def _scheduled_in_future(self, case: Case) -> bool:
        when = case.scheduled_remediation_date
        if when is None:
            return False
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return when > self.clock()

    def system_scan(self) -> SystemScanSummary:
        """Scan every offboarded subject known to the HR system.

        Cases are created lazily for subjects that have no open case. One
        subject's failure is recorded and does not stop the others; store
        failures propagate.
        """
        summary = SystemScanSummary()
        if self.hr is None:
            summary.error = "HR directory not configured"
            logger.warning("system_scan_skipped", reason=summary.error)
            return summary

        try:
            records = self.hr.list_offboarded_subjects()
        except Exception as e:
            summary.error = f"HR directory unavailable: {e}"
            logger.error("system_scan_hr_failed", error=str(e))
            self._audit("SystemScan", "SYSTEM", "Failed", response={"error": summary.error})
            return summary

        settings = self.settings
        summary.subjects = len(records)
        logger.info("system_scan_started", subjects=len(records))

        for record in records:
            try:
                case = self.store.find_case_by_email(record.email)
                if case is None:
                    if not settings.auto_create_case_on_leave:
                        summary.skipped += 1
                        continue
                    case = self.create_case_for_subject(
                        record.email,
                        subject_name=record.name,
                        hr_id=record.id,
                        effective_date=record.effective_date,
                    )
                    summary.cases_created += 1

                result = self.trigger_scan(case.id)
            except StoreError:
                raise
            except Exception as e:
                summary.failed += 1
                summary.errors[record.email] = str(e)
                logger.error("system_scan_subject_failed", email=record.email, error=str(e))
                continue

            summary.results.append(result)
            if result.ok:
                summary.scanned += 1
                summary.total_artifacts += result.artifacts
                summary.total_new_findings += len(result.new_findings)
            else:
                summary.failed += 1
                summary.errors[record.email] = result.error

        self._audit(
            "SystemScan",
            "SYSTEM",
            "Success" if not summary.failed else "Partial",
            response={
                "subjects": summary.subjects,
                "scanned": summary.scanned,
                "cases_created": summary.cases_created,
                "failed": summary.failed,
                "artifacts": summary.total_artifacts,
                "new_findings": summary.total_new_findings,
            },
        )
        logger.info(
            "system_scan_complete",
            subjects=summary.subjects,
            scanned=summary.scanned,
            failed=summary.failed,
            new_findings=summary.total_new_findings,
        )
        return summary

    # Remediation

    def execute_remediation(
        self,
        case_id: str,
        action: Union[RemediationAction, str],
    ) -> RemediationResult:
        """Run a remediation action for a case and reconcile its status.

        FullBundle closes every open finding and forces Remediated when the
        provider calls succeeded. Every other action, and a failed full
        bundle, is verified by a fresh discovery once all revocations have
        settled.

        Raises:
            CaseNotFoundError: If the case does not exist
            InvalidActionError: If the action is unknown
        """
        case = self._get_case(case_id)
        if isinstance(action, str):
            action = parse_action(action)

        email = case.subject_email
        logger.info("remediation_started", case_id=case.id, action=action.name, email=email)

        if isinstance(action, FullBundle):
            outcome = self.orchestrator.full_remediation(email)
        elif isinstance(action, RevokeToken):
            if action.client_id:
                outcome = self.orchestrator.revoke_grants_for_app(email, action.client_id)
            else:
                outcome = self.orchestrator.revoke_all_grants(email)
        elif isinstance(action, SignOut):
            outcome = self.orchestrator.revoke_sessions(email)
        elif isinstance(action, RemoveAppRoles):
            outcome = self.orchestrator.revoke_role_assignments(email)
        else:
            raise InvalidActionError(f"Unsupported remediation action: {action!r}")

        if isinstance(action, FullBundle) and outcome.success and not outcome.skipped:
            result = self._force_remediated(case, outcome)
        else:
            result = self._verify_remediation(case, action, outcome)

        self._audit(
            "Remediation",
            email,
            "Success" if outcome.success else "Failed",
            remediation_type=action.name,
            request={"case_id": case.id, "action": action.name, "client_id": getattr(action, "client_id", None)},
            response={
                **outcome.to_dict(),
                "status": result.status.value,
                "closed_findings": result.closed_findings,
                "verified": result.verified,
            },
        )

        if outcome.success and not outcome.skipped and self.alerter and self.settings.notify_on_remediation:
            self._send_alert(
                FindingAlert(
                    finding_name=case.id,
                    severity=Severity.LOW.value,
                    finding_type="RemediationCompleted",
                    summary=f"{action.name} completed for {email}; case is now {result.status.value}",
                    case_name=case.id,
                    subject_email=email,
                )
            )

        logger.info(
            "remediation_complete",
            case_id=case.id,
            action=action.name,
            success=outcome.success,
            status=result.status.value,
        )
        return result

    def _force_remediated(self, case: Case, outcome: RemediationOutcome) -> RemediationResult:
        closed = []
        for finding in self.store.open_findings_for_case(case.id):
            self.store.close_finding(finding.id)
            closed.append(finding.id)

        revoked_ids = {
            g["grant_id"]
            for g in outcome.details.get("grants", {}).get("grants", [])
            if g.get("success")
        }
        if revoked_ids:
            self._mark_revoked(case.id, revoked_ids)

        if case.status != CaseStatus.REMEDIATED:
            self.store.update_case(case.id, status=CaseStatus.REMEDIATED)
            logger.info(
                "case_status_changed",
                case_id=case.id,
                previous=case.status.value,
                status=CaseStatus.REMEDIATED.value,
                trigger="full_bundle",
            )

        return RemediationResult(
            case_id=case.id,
            action=FullBundle.name,
            outcome=outcome,
            status=CaseStatus.REMEDIATED,
            closed_findings=closed,
        )

    def _mark_revoked(self, case_id: str, grant_ids: Set[str]) -> None:
        # Only provider-acknowledged revocations change artifact status
        artifacts = self.store.list_artifacts(case_id=case_id)
        for artifact in artifacts:
            if artifact.kind == ArtifactKind.OAUTH_GRANT and artifact.metadata.get("grant_id") in grant_ids:
                artifact.status = ArtifactStatus.REVOKED
        self.store.replace_artifacts(case_id, artifacts)

    def _verify_remediation(
        self,
        case: Case,
        action: RemediationAction,
        outcome: RemediationOutcome,
    ) -> RemediationResult:
        before = {f.id for f in self.store.open_findings_for_case(case.id)}
        result = self.discovery.discover_subject_access(case.subject_email, case.id)

        if not result.ok:
            logger.warning("remediation_verification_failed", case_id=case.id, error=result.error)
            return RemediationResult(case_id=case.id, action=action.name, outcome=outcome, status=case.status)

        summary = self._reconcile(case, result, Trigger.REMEDIATION)
        after = {f.id for f in self.store.open_findings_for_case(case.id)}
        self._alert_new_findings(case, summary.new_findings)

        return RemediationResult(
            case_id=case.id,
            action=action.name,
            outcome=outcome,
            status=summary.status,
            closed_findings=sorted(before - after),
            verified=True,
        )

    def remediate_finding(self, finding_id: str) -> FindingRemediation:
        """Close a finding manually and enforce it on the provider.

        Enforcement is non-blocking: its failure is logged and reported but
        the finding stays closed.

        Raises:
            FindingNotFoundError: If the finding does not exist
        """
        finding = self.store.get_finding(finding_id)
        if finding is None:
            raise FindingNotFoundError(finding_id)
        case = self._get_case(finding.case_id)

        closed = self.store.close_finding(finding.id) if finding.is_open else finding
        report = FindingRemediation(finding=closed)

        method_name = ENFORCEMENT_BY_KIND.get(finding.kind)
        if method_name is not None:
            try:
                report.enforcement = getattr(self.orchestrator, method_name)(case.subject_email)
                if not report.enforcement.success:
                    report.enforcement_error = report.enforcement.error
            except Exception as e:
                report.enforcement_error = str(e)

            if report.enforcement_error:
                logger.warning(
                    "finding_enforcement_failed",
                    finding_id=finding.id,
                    case_id=case.id,
                    enforcement=method_name,
                    error=report.enforcement_error,
                    blocking=False,
                )

        self._audit(
            "FindingRemediated",
            case.subject_email,
            "Success" if not report.enforcement_error else "Partial",
            remediation_type=method_name,
            request={"finding_id": finding.id, "case_id": case.id, "kind": finding.kind.value},
            response={
                "enforcement": report.enforcement.to_dict() if report.enforcement else None,
                "enforcement_error": report.enforcement_error,
            },
        )
        return report

    # Case lifecycle

    def create_case_for_subject(
        self,
        email: str,
        subject_name: str = "",
        hr_id: str = "",
        event_type: EventType = EventType.OFFBOARD,
        effective_date: Optional[Any] = None,
        notes: str = "",
    ) -> Case:
        """Return the subject's open case, creating a Draft case if none exists."""
        existing = self.store.find_case_by_email(email)
        if existing is not None:
            logger.debug("case_exists", case_id=existing.id, email=email)
            return existing

        if effective_date is not None and not isinstance(effective_date, datetime):
            effective_date = datetime(effective_date.year, effective_date.month, effective_date.day, tzinfo=timezone.utc)

        case = self.store.create_case(
            Case(
                subject_email=email.lower(),
                subject_id=hr_id,
                subject_name=subject_name,
                event_type=event_type,
                effective_date=effective_date or self.clock(),
                notes=notes,
                created_at=self.clock(),
            )
        )
        self._audit("CaseCreated", case.subject_email, "Success", request={"case_id": case.id})
        return case

    def handle_offboarding(self, record: HRRecord) -> Optional[Case]:
        """Apply the offboarding automation settings to an HR record."""
        settings = self.settings
        if not settings.auto_create_case_on_leave:
            logger.info("offboarding_case_creation_disabled", email=record.email)
            return None

        case = self.create_case_for_subject(
            record.email,
            subject_name=record.name,
            hr_id=record.id,
            effective_date=record.effective_date,
        )
        if settings.auto_scan_on_offboard:
            self.trigger_scan(case.id)
        if settings.auto_remediate_on_offboard:
            self.execute_remediation(case.id, settings.default_remediation_action)
        return self._get_case(case.id)

    def schedule_remediation(self, case_id: str, when: datetime) -> Case:
        """Schedule a full-bundle remediation and reset reminder flags.

        Raises:
            InvalidTransitionError: If the case is already Remediated or Closed
        """
        case = self._get_case(case_id)
        if case.status in (CaseStatus.REMEDIATED, CaseStatus.CLOSED):
            raise InvalidTransitionError(f"Cannot schedule remediation for a {case.status.value} case")
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)

        updated = self.store.update_case(
            case.id,
            status=CaseStatus.SCHEDULED,
            scheduled_remediation_date=when,
            notify_1w_sent=False,
            notify_1d_sent=False,
        )
        self._audit(
            "RemediationScheduled",
            case.subject_email,
            "Success",
            remediation_type=FullBundle.name,
            request={"case_id": case.id, "scheduled_for": when.isoformat()},
        )
        logger.info("remediation_scheduled", case_id=case.id, scheduled_for=when.isoformat())
        return updated

    def close_case(self, case_id: str, note: Optional[str] = None) -> Case:
        case = self._get_case(case_id)
        patch: Dict[str, Any] = {"status": CaseStatus.CLOSED}
        if note:
            patch["notes"] = f"{case.notes}\n{note}".strip()
        updated = self.store.update_case(case.id, **patch)
        self._audit("CaseClosed", case.subject_email, "Success", request={"case_id": case.id})
        return updated

    # Unified views

    def subject_overview(self, email: str) -> SubjectOverview:
        """Merge HR, live identity state and stored case data for one subject.

        Each source degrades independently; ``sources`` records which ones
        answered.
        """
        sources: Dict[str, str] = {}

        hr_record = None
        if self.hr is None:
            sources["hr"] = "not_configured"
        else:
            try:
                hr_record = self.hr.find_by_email(email)
                sources["hr"] = "ok"
            except Exception as e:
                logger.warning("subject_overview_hr_unavailable", email=email, error=str(e))
                sources["hr"] = "unavailable"

        live = None
        if not self.discovery.is_configured:
            sources["identity"] = "not_configured"
        else:
            live = self.discovery.discover_subject_access(email)
            sources["identity"] = "ok" if live.ok else "unavailable"

        cases = self.store.list_cases(email=email)
        sources["store"] = "ok"
        findings: List[Finding] = []
        for case in cases:
            findings.extend(self.store.findings_for_case(case.id))

        subject = live.subject if live is not None and live.subject is not None else None
        if subject is None and hr_record is not None:
            subject = Subject(
                id=hr_record.id,
                email=hr_record.email,
                display_name=hr_record.name,
                enabled=not hr_record.is_offboarded,
                source="hr",
            )
        if subject is None and cases:
            subject = Subject(
                id=cases[0].subject_id,
                email=cases[0].subject_email,
                display_name=cases[0].subject_name,
                enabled=True,
                source="store",
            )

        return SubjectOverview(
            email=email.lower(),
            subject=subject,
            hr_record=hr_record,
            live=live,
            cases=cases,
            findings=findings,
            audit=self.store.list_audit_logs(target_email=email, limit=50),
            sources=sources,
        )

    def _tracked_emails(self) -> List[str]:
        emails = {c.subject_email for c in self.store.list_cases() if c.status != CaseStatus.CLOSED}
        if self.hr is not None:
            try:
                emails.update(r.email for r in self.hr.list_offboarded_subjects())
            except Exception as e:
                logger.warning("tracked_emails_hr_unavailable", error=str(e))
        return sorted(emails)

    def list_active_apps(self, emails: Optional[Iterable[str]] = None) -> List[ActiveApp]:
        """Aggregate live OAuth grants and role assignments by application.

        Defaults to every subject with an open case or an offboarded HR record.
        """
        targets = list(emails) if emails is not None else self._tracked_emails()
        results = self.discovery.discover_all_subjects_access(targets)

        apps: Dict[str, ActiveApp] = {}
        for email, result in results.items():
            for artifact in result.active_artifacts:
                if artifact.kind not in (ArtifactKind.OAUTH_GRANT, ArtifactKind.APP_ROLE_ASSIGNMENT):
                    continue
                app = apps.get(artifact.client_id)
                if app is None:
                    app = apps[artifact.client_id] = ActiveApp(
                        client_id=artifact.client_id,
                        display_name=artifact.app_display_name,
                        kind=artifact.kind,
                    )
                app.users.add(email)
                app.grants += 1
                app.scopes.update(artifact.scopes)
                app.risk = highest_tier([app.risk, artifact.risk])

        return sorted(apps.values(), key=lambda a: (-a.risk.rank, -len(a.users), a.display_name))

    def revoke_app_for_all(self, client_id: str, emails: Optional[Iterable[str]] = None) -> GlobalRemovalResult:
        """Revoke one application's grants from every affected subject.

        Each subject is handled independently and audited.
        """
        affected: Set[str] = set()
        for app in self.list_active_apps(emails):
            if app.client_id == client_id:
                affected.update(app.users)

        result = GlobalRemovalResult(client_id=client_id)
        for email in sorted(affected):
            outcome = self.orchestrator.revoke_grants_for_app(email, client_id)
            result.outcomes[email] = outcome
            self._audit(
                "GlobalAppRemoval",
                email,
                "Success" if outcome.success else "Failed",
                remediation_type=RevokeToken.name,
                request={"client_id": client_id},
                response=outcome.to_dict(),
            )

        logger.info(
            "global_app_removal_complete",
            client_id=client_id,
            subjects=len(affected),
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    # Notifications

    def _alert_new_findings(self, case: Case, findings: List[Finding]) -> None:
        if self.alerter is None or not findings:
            return
        settings = self.settings
        if not settings.notify_on_new_findings:
            return
        for finding in findings:
            if finding.severity not in ALERT_SEVERITIES:
                continue
            self._send_alert(
                FindingAlert(
                    finding_name=finding.id or "",
                    severity=finding.severity.value,
                    finding_type=finding.kind.value,
                    summary=finding.summary,
                    case_name=case.id,
                    subject_email=case.subject_email,
                ),
                settings,
            )

    def _send_alert(self, alert: FindingAlert, settings: Optional[EngineSettings] = None) -> bool:
        settings = settings or self.settings
        try:
            return self.alerter.send_alert(alert, settings.notification_email)
        except Exception as e:
            # Notifications never block the operation that raised them
            logger.error("alert_dispatch_failed", finding=alert.finding_name, error=str(e), blocking=False)
            return False
