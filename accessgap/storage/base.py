"""Case store interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from accessgap.core.models import (
    Artifact,
    AuditEntry,
    Case,
    CaseStatus,
    EngineSettings,
    Finding,
    FindingKind,
)


class CaseStore(ABC):
    """Persistence for cases, findings, artifact snapshots and audit entries.

    Every write must be visible to the next read made by the same caller;
    the reconciliation engine reads state back immediately after writing it.
    Implementations raise StoreError on persistence failures,
    CaseNotFoundError/FindingNotFoundError for unknown references.
    """

    @abstractmethod
    def list_cases(self, status: Optional[CaseStatus] = None, email: Optional[str] = None) -> List[Case]:
        ...

    @abstractmethod
    def get_case(self, case_id: str) -> Optional[Case]:
        ...

    @abstractmethod
    def create_case(self, case: Case) -> Case:
        ...

    @abstractmethod
    def update_case(self, case_id: str, **patch) -> Case:
        ...

    @abstractmethod
    def find_case_by_email(self, email: str) -> Optional[Case]:
        """Return the most recent case for ``email`` that is not Closed."""

    @abstractmethod
    def list_findings(
        self,
        case_id: Optional[str] = None,
        open_only: bool = False,
        kind: Optional[FindingKind] = None,
    ) -> List[Finding]:
        ...

    @abstractmethod
    def get_finding(self, finding_id: str) -> Optional[Finding]:
        ...

    @abstractmethod
    def create_finding(self, finding: Finding) -> Finding:
        ...

    @abstractmethod
    def close_finding(self, finding_id: str) -> Finding:
        ...

    def findings_for_case(self, case_id: str) -> List[Finding]:
        return self.list_findings(case_id=case_id)

    def open_findings_for_case(self, case_id: str) -> List[Finding]:
        return self.list_findings(case_id=case_id, open_only=True)

    @abstractmethod
    def replace_artifacts(self, case_id: str, artifacts: List[Artifact]) -> None:
        """Replace the stored artifact snapshot for a case."""

    @abstractmethod
    def list_artifacts(self, case_id: Optional[str] = None, email: Optional[str] = None) -> List[Artifact]:
        ...

    @abstractmethod
    def list_audit_logs(
        self,
        target_email: Optional[str] = None,
        action_type: Optional[str] = None,
        limit: int = 200,
    ) -> List[AuditEntry]:
        ...

    @abstractmethod
    def log_action(self, entry: AuditEntry) -> AuditEntry:
        ...

    @abstractmethod
    def get_settings(self) -> EngineSettings:
        ...

    @abstractmethod
    def update_settings(self, **patch) -> EngineSettings:
        ...
