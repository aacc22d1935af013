"""Discovery of a subject's live access from the identity provider."""

import concurrent.futures
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

from accessgap.core.exceptions import IdentityAPIError
from accessgap.core.identity.client import IdentityClient
from accessgap.core.models import (
    AppIdentity,
    Artifact,
    ArtifactKind,
    ArtifactStatus,
    Finding,
    FindingKind,
    Grant,
    LicenseDetail,
    RiskTier,
    RoleAssignment,
    Severity,
    Subject,
    utcnow,
)
from accessgap.core.risk import classify_scopes
from accessgap.core.utils.concurrent import ConcurrentProcessor

logger = structlog.get_logger(__name__)

NOT_CONFIGURED = "identity provider not configured"

# Access a remediation call can remove; licensed apps follow the license itself
REVOCABLE_KINDS = (ArtifactKind.OAUTH_GRANT, ArtifactKind.APP_ROLE_ASSIGNMENT)


@dataclass(frozen=True)
class FirstPartyApp:
    name: str
    category: str
    risk: RiskTier


# Licensed first-party apps: access comes from the license, not an OAuth consent
SERVICE_PLAN_APPS: Dict[str, FirstPartyApp] = {
    "EXCHANGE_S_STANDARD": FirstPartyApp("Outlook (Exchange Online)", "email", RiskTier.HIGH),
    "EXCHANGE_S_ENTERPRISE": FirstPartyApp("Outlook (Exchange Online)", "email", RiskTier.HIGH),
    "MCOSTANDARD": FirstPartyApp("Microsoft Teams", "communication", RiskTier.MEDIUM),
    "TEAMS1": FirstPartyApp("Microsoft Teams", "communication", RiskTier.MEDIUM),
    "SHAREPOINTSTANDARD": FirstPartyApp("SharePoint / OneDrive", "storage", RiskTier.HIGH),
    "SHAREPOINTENTERPRISE": FirstPartyApp("SharePoint / OneDrive", "storage", RiskTier.HIGH),
    "SHAREPOINTWAC": FirstPartyApp("Office for the Web", "productivity", RiskTier.LOW),
    "OFFICE_BUSINESS": FirstPartyApp("Microsoft 365 Apps", "productivity", RiskTier.MEDIUM),
    "OFFICESUBSCRIPTION": FirstPartyApp("Microsoft 365 Apps", "productivity", RiskTier.MEDIUM),
    "SWAY": FirstPartyApp("Sway", "productivity", RiskTier.LOW),
    "YAMMER_ENTERPRISE": FirstPartyApp("Viva Engage (Yammer)", "communication", RiskTier.LOW),
    "PROJECTWORKMANAGEMENT": FirstPartyApp("Microsoft Planner", "productivity", RiskTier.LOW),
    "MICROSOFTBOOKINGS": FirstPartyApp("Microsoft Bookings", "productivity", RiskTier.LOW),
    "FORMS_PLAN_E1": FirstPartyApp("Microsoft Forms", "productivity", RiskTier.LOW),
    "STREAM_O365_SMB": FirstPartyApp("Microsoft Stream", "media", RiskTier.LOW),
    "POWERAPPS_O365_P1": FirstPartyApp("Power Apps", "automation", RiskTier.MEDIUM),
    "FLOW_O365_P1": FirstPartyApp("Power Automate", "automation", RiskTier.MEDIUM),
    "Bing_Chat_Enterprise": FirstPartyApp("Microsoft Copilot", "ai", RiskTier.MEDIUM),
    "MICROSOFT_LOOP": FirstPartyApp("Microsoft Loop", "productivity", RiskTier.LOW),
}


@dataclass
class DiscoveryResult:
    """Normalized snapshot of one subject's live access."""

    email: str
    subject: Optional[Subject] = None
    artifacts: List[Artifact] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def active_artifacts(self) -> List[Artifact]:
        return [a for a in self.artifacts if a.status == ArtifactStatus.ACTIVE]

    @property
    def revocable_artifacts(self) -> List[Artifact]:
        return [a for a in self.active_artifacts if a.kind in REVOCABLE_KINDS]

    def finding_kinds(self) -> set:
        return {f.kind for f in self.findings}


class DiscoveryService:
    """Turns a subject's identity provider state into artifacts and findings."""

    def __init__(self, client: Optional[IdentityClient] = None, max_workers: int = 5):
        """Initialize discovery service.

        Args:
            client: Identity provider client, or None when not configured
            max_workers: Parallelism for multi-subject discovery
        """
        self.client = client
        self.processor = ConcurrentProcessor(max_workers=max_workers)

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def discover_subject_access(self, email: str, case_id: Optional[str] = None) -> DiscoveryResult:
        """Discover all live access held by one subject.

        Never raises for business-level situations: an unknown subject or an
        unreachable provider yields a result with ``error`` set.

        Args:
            email: Subject email address
            case_id: Case to attach artifacts and findings to

        Returns:
            DiscoveryResult
        """
        if self.client is None:
            return DiscoveryResult(email=email, error=NOT_CONFIGURED)

        try:
            subject = self.client.get_subject(email)
        except IdentityAPIError as e:
            logger.error("subject_lookup_failed", email=email, error=str(e), status_code=e.status_code)
            return DiscoveryResult(email=email, error=str(e))

        if subject is None:
            logger.info("subject_not_found", email=email)
            return DiscoveryResult(email=email, error=f"Subject not found: {email}")

        # The three categories are independent; each degrades to [] on failure
        with concurrent.futures.ThreadPoolExecutor(max_workers=3) as executor:
            grants_future = executor.submit(
                self._fetch_category, "oauth_grants", email, self.client.list_oauth_grants, subject.id
            )
            roles_future = executor.submit(
                self._fetch_category, "role_assignments", email, self.client.list_role_assignments, subject.id
            )
            licenses_future = executor.submit(
                self._fetch_category, "license_entitlements", email, self.client.list_license_entitlements, email
            )
            grants: List[Grant] = grants_future.result()
            roles: List[RoleAssignment] = roles_future.result()
            licenses: List[LicenseDetail] = licenses_future.result()

        referenced_ids = [g.client_id for g in grants] + [g.resource_id for g in grants]
        referenced_ids += [r.resource_id for r in roles]
        apps = self.client.list_applications(referenced_ids)

        artifacts: List[Artifact] = []
        artifacts.extend(self._grant_artifacts(email, grants, apps, case_id))
        artifacts.extend(self._role_artifacts(email, roles, case_id))
        licensed = self._license_artifacts(email, licenses, case_id)
        artifacts.extend(licensed)

        findings = generate_findings(email, subject, artifacts, case_id)

        logger.info(
            "subject_discovery_complete",
            email=email,
            grants=len(grants),
            role_assignments=len(roles),
            licensed_apps=len(licensed),
            findings=len(findings),
        )

        return DiscoveryResult(
            email=email,
            subject=subject,
            artifacts=artifacts,
            findings=findings,
            raw={
                "oauth_grants": [asdict(g) for g in grants],
                "role_assignments": [asdict(r) for r in roles],
                "licensed_apps": [a.app_display_name for a in licensed],
            },
        )

    def discover_all_subjects_access(self, emails: Iterable[str]) -> Dict[str, DiscoveryResult]:
        """Discover access for many subjects in parallel.

        A failure for one subject is recorded as that subject's error result
        and never aborts the batch.
        """

        def on_error(email: str, error: Exception) -> DiscoveryResult:
            return DiscoveryResult(email=email, error=str(error))

        return self.processor.process(emails, self.discover_subject_access, error_handler=on_error)

    def has_active_access(self, email: str) -> bool:
        """Quick check for any OAuth grant or role assignment."""
        if self.client is None:
            return False
        try:
            subject = self.client.get_subject(email)
        except IdentityAPIError:
            return False
        if subject is None:
            return False

        grants = self._fetch_category("oauth_grants", email, self.client.list_oauth_grants, subject.id)
        if grants:
            return True
        return bool(self._fetch_category("role_assignments", email, self.client.list_role_assignments, subject.id))

    @staticmethod
    def _fetch_category(category: str, email: str, fetch: Callable[[str], list], key: str) -> list:
        try:
            return fetch(key)
        except Exception as e:
            logger.warning("discovery_category_failed", category=category, email=email, error=str(e))
            return []

    @staticmethod
    def _grant_artifacts(
        email: str,
        grants: List[Grant],
        apps: Dict[str, Optional[AppIdentity]],
        case_id: Optional[str],
    ) -> List[Artifact]:
        artifacts = []
        for grant in grants:
            app = apps.get(grant.client_id)
            artifacts.append(
                Artifact(
                    kind=ArtifactKind.OAUTH_GRANT,
                    subject_email=email,
                    app_display_name=app.display_name if app else f"ServicePrincipal:{grant.client_id}",
                    client_id=(app.app_id if app and app.app_id else grant.client_id),
                    risk=classify_scopes(grant.scopes),
                    scopes=grant.scopes,
                    name=f"ms-grant-{grant.id}",
                    case_id=case_id,
                    metadata={
                        "grant_id": grant.id,
                        "consent_type": grant.consent_type,
                        "resource_id": grant.resource_id,
                        "principal_id": grant.principal_id,
                        "service_principal_id": grant.client_id,
                    },
                )
            )
        return artifacts

    @staticmethod
    def _role_artifacts(email: str, roles: List[RoleAssignment], case_id: Optional[str]) -> List[Artifact]:
        # Role semantics are not expressed as scope strings
        return [
            Artifact(
                kind=ArtifactKind.APP_ROLE_ASSIGNMENT,
                subject_email=email,
                app_display_name=role.resource_display_name or f"App:{role.resource_id}",
                client_id=role.resource_id,
                risk=RiskTier.MEDIUM,
                scopes=[f"AppRole:{role.app_role_id}"],
                created_at=role.created_at or utcnow(),
                name=f"ms-role-{role.id}",
                case_id=case_id,
                metadata={"assignment_id": role.id, "app_role_id": role.app_role_id},
            )
            for role in roles
        ]

    @staticmethod
    def _license_artifacts(email: str, licenses: List[LicenseDetail], case_id: Optional[str]) -> List[Artifact]:
        artifacts = []
        seen = set()
        for lic in licenses:
            for plan in lic.service_plans:
                if plan.provisioning_status != "Success":
                    continue
                app = SERVICE_PLAN_APPS.get(plan.name)
                if app is None or app.name in seen:
                    continue
                seen.add(app.name)
                artifacts.append(
                    Artifact(
                        kind=ArtifactKind.LICENSED_APP,
                        subject_email=email,
                        app_display_name=app.name,
                        client_id=f"license:{plan.name}",
                        risk=app.risk,
                        scopes=[f"License:{plan.name}"],
                        name=f"ms-license-{lic.sku_id}-{plan.name}",
                        case_id=case_id,
                        metadata={
                            "sku_id": lic.sku_id,
                            "sku_part_number": lic.sku_part_number,
                            "service_plan_name": plan.name,
                            "category": app.category,
                        },
                    )
                )
        return artifacts


def generate_findings(
    email: str,
    subject: Subject,
    artifacts: List[Artifact],
    case_id: Optional[str] = None,
) -> List[Finding]:
    """Derive findings from an artifact set.

    Deterministic for the same artifacts and account state.
    """
    findings: List[Finding] = []
    active = [a for a in artifacts if a.status == ArtifactStatus.ACTIVE]

    if active and not subject.enabled:
        findings.append(
            Finding(
                kind=FindingKind.LINGERING_OAUTH_GRANT,
                severity=Severity.HIGH,
                summary=f"{len(active)} active OAuth grant(s) found for disabled account {email}",
                recommended_action="Revoke all OAuth grants and sign-in sessions",
                case_id=case_id,
            )
        )

    high_risk = [a for a in active if a.risk.at_least(RiskTier.HIGH)]
    if high_risk:
        app_names = sorted({a.app_display_name for a in high_risk})
        findings.append(
            Finding(
                kind=FindingKind.HIGH_RISK_LINGERING_ACCESS,
                severity=Severity.CRITICAL,
                summary=(
                    f"{len(high_risk)} high/critical risk grant(s) for {email}: "
                    f"{', '.join(app_names)}"
                ),
                recommended_action="Immediately revoke high-risk grants",
                case_id=case_id,
            )
        )

    return findings
