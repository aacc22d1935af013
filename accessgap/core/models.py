"""Data models for subjects, artifacts, findings, cases and audit entries."""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArtifactKind(str, Enum):
    """Kinds of discovered access."""

    OAUTH_GRANT = "OAuthGrant"
    APP_ROLE_ASSIGNMENT = "AppRoleAssignment"
    LICENSED_APP = "LicensedApp"
    LOGIN_EVENT = "LoginEvent"


class ArtifactStatus(str, Enum):
    ACTIVE = "Active"
    REVOKED = "Revoked"
    DELETED = "Deleted"
    ACKNOWLEDGED = "Acknowledged"
    HIDDEN = "Hidden"


class RiskTier(str, Enum):
    """Risk classification of an artifact, ordered Low < Critical."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    def at_least(self, other: "RiskTier") -> bool:
        return self.rank >= other.rank


_RISK_RANK = {
    RiskTier.LOW: 0,
    RiskTier.MEDIUM: 1,
    RiskTier.HIGH: 2,
    RiskTier.CRITICAL: 3,
}


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class CaseStatus(str, Enum):
    """Offboarding case lifecycle states."""

    DRAFT = "Draft"
    SCHEDULED = "Scheduled"
    ALL_CLEAR = "All Clear"
    GAPS_FOUND = "Gaps Found"
    REMEDIATED = "Remediated"
    CLOSED = "Closed"


class EventType(str, Enum):
    OFFBOARD = "Offboard"
    SECURITY_REVIEW = "Security Review"
    MANUAL_CHECK = "Manual Check"


class FindingKind(str, Enum):
    """Taxonomy of policy violations."""

    LINGERING_OAUTH_GRANT = "LingeringOAuthGrant"
    HIGH_RISK_LINGERING_ACCESS = "HighRiskLingeringAccess"
    ACCESS_REAPPEARED = "AccessReappeared"
    POST_OFFBOARD_LOGIN = "PostOffboardLogin"
    SCHEDULED_REMEDIATION = "ScheduledRemediation"


@dataclass
class Subject:
    """A person whose access is being tracked."""

    id: str
    email: str
    display_name: str = ""
    enabled: bool = True
    source: str = "identity"


@dataclass
class Grant:
    """A delegated OAuth permission grant."""

    id: str
    client_id: str
    resource_id: str = ""
    consent_type: str = ""
    principal_id: Optional[str] = None
    scope: str = ""

    @property
    def scopes(self) -> List[str]:
        return [s for s in self.scope.split() if s]


@dataclass
class RoleAssignment:
    """An application role assigned to a subject."""

    id: str
    app_role_id: str
    resource_id: str
    resource_display_name: str = ""
    principal_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ServicePlan:
    name: str
    provisioning_status: str = ""


@dataclass
class LicenseDetail:
    """A license SKU and its service plans."""

    sku_id: str
    sku_part_number: str = ""
    service_plans: List[ServicePlan] = field(default_factory=list)


@dataclass
class AppIdentity:
    """A resolved client application (service principal)."""

    id: str
    app_id: str
    display_name: str
    publisher: Optional[str] = None


@dataclass
class Artifact:
    """A discovered unit of live access."""

    kind: ArtifactKind
    subject_email: str
    app_display_name: str
    client_id: str
    risk: RiskTier
    status: ArtifactStatus = ArtifactStatus.ACTIVE
    scopes: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)
    name: str = ""
    case_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["risk"] = self.risk.value
        data["status"] = self.status.value
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass
class Finding:
    """A policy violation attached to exactly one case."""

    kind: FindingKind
    severity: Severity
    summary: str
    case_id: Optional[str] = None
    recommended_action: str = ""
    id: Optional[str] = None
    closed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_open(self) -> bool:
        return self.closed_at is None


@dataclass
class Case:
    """Offboarding lifecycle record for one subject."""

    subject_email: str
    subject_id: str = ""
    subject_name: str = ""
    event_type: EventType = EventType.OFFBOARD
    effective_date: Optional[datetime] = None
    status: CaseStatus = CaseStatus.DRAFT
    scheduled_remediation_date: Optional[datetime] = None
    notify_1w_sent: bool = False
    notify_1d_sent: bool = False
    notes: str = ""
    id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    modified_at: Optional[datetime] = None


@dataclass(frozen=True)
class AuditEntry:
    """Append-only record of a scan, remediation or admin action."""

    action_type: str
    target_email: str
    result: str
    actor: str = "system"
    remediation_type: Optional[str] = None
    request: Optional[Dict[str, Any]] = None
    response: Optional[Dict[str, Any]] = None
    id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class EngineSettings:
    """Operator-tunable engine behaviour, persisted by the case store."""

    auto_scan_on_offboard: bool = False
    auto_remediate_on_offboard: bool = False
    auto_create_case_on_leave: bool = True
    background_scan_enabled: bool = False
    background_scan_interval: str = "Daily"
    remediation_check_interval: str = "Every 6 Hours"
    notify_on_new_findings: bool = True
    notify_on_remediation: bool = True
    notification_email: Optional[str] = None
    default_remediation_action: str = "full_bundle"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineSettings":
        """Build settings from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})
