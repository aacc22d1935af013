"""Remediation orchestration against the identity provider."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from accessgap.core.exceptions import IdentityAPIError
from accessgap.core.identity.client import IdentityClient
from accessgap.core.models import Subject, utcnow

logger = structlog.get_logger(__name__)


@dataclass
class RemediationOutcome:
    """Uniform result of a remediation call."""

    success: bool
    action: str
    subject_id: str
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    is_permission_error: bool = False
    status_code: Optional[int] = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def skipped(self) -> bool:
        return bool(self.details.get("skipped"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "action": self.action,
            "subject_id": self.subject_id,
            "details": self.details,
            "error": self.error,
            "is_permission_error": self.is_permission_error,
            "status_code": self.status_code,
            "timestamp": self.timestamp.isoformat(),
        }


class _SubjectNotFound(Exception):
    pass


class RemediationOrchestrator:
    """Executes revocation actions for a subject.

    No method raises: provider failures become ``success=False`` outcomes
    carrying the error and whether it was a permission failure. Without a
    client every method returns a skipped success and makes no calls.
    """

    def __init__(self, client: Optional[IdentityClient] = None):
        self.client = client

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def revoke_grant(self, email: str, grant_id: str) -> RemediationOutcome:
        action = "revoke_grant"
        if self.client is None:
            return self._skipped(action, email)
        try:
            self.client.delete_grant(grant_id)
            return self._success(action, email, {"grant_id": grant_id})
        except Exception as e:
            return self._failure(action, email, e)

    def revoke_all_grants(self, email: str) -> RemediationOutcome:
        """Revoke every OAuth grant held by the subject.

        Each deletion is independent; failures are reported per grant and do
        not stop the remaining deletions.
        """
        action = "revoke_all_grants"
        if self.client is None:
            return self._skipped(action, email)

        try:
            subject = self._require_subject(email)
            grants = self.client.list_oauth_grants(subject.id)
        except Exception as e:
            return self._failure(action, email, e)

        results: List[Dict[str, Any]] = []
        for grant in grants:
            try:
                self.client.delete_grant(grant.id)
                results.append({"grant_id": grant.id, "success": True})
            except Exception as e:
                logger.warning("grant_revocation_failed", email=email, grant_id=grant.id, error=str(e))
                results.append({
                    "grant_id": grant.id,
                    "success": False,
                    "error": str(e),
                    "is_permission_error": isinstance(e, IdentityAPIError) and e.is_permission_error,
                })

        revoked = sum(1 for r in results if r["success"])
        logger.info(
            "grants_revoked",
            email=email,
            total_grants=len(grants),
            revoked=revoked,
            failed=len(results) - revoked,
        )
        return self._success(action, email, {
            "total_grants": len(grants),
            "revoked": revoked,
            "failed": len(results) - revoked,
            "grants": results,
        })

    def revoke_grants_for_app(self, email: str, client_id: str) -> RemediationOutcome:
        """Revoke the subject's grants for one client application.

        The application is resolved first so that both app ids and service
        principal object ids match the grants' client id.
        """
        action = "revoke_grants_for_app"
        if self.client is None:
            return self._skipped(action, email)

        try:
            subject = self._require_subject(email)
            app = self.client.resolve_application(client_id)
            match_ids = {client_id}
            if app is not None:
                match_ids.update(i for i in (app.id, app.app_id) if i)
            grants = [g for g in self.client.list_oauth_grants(subject.id) if g.client_id in match_ids]
        except Exception as e:
            return self._failure(action, email, e)

        revoked, failures = 0, []
        for grant in grants:
            try:
                self.client.delete_grant(grant.id)
                revoked += 1
            except Exception as e:
                logger.warning("grant_revocation_failed", email=email, grant_id=grant.id, error=str(e))
                failures.append({"grant_id": grant.id, "error": str(e)})

        details = {
            "client_id": client_id,
            "service_principal_id": app.id if app else None,
            "matching_grants": len(grants),
            "revoked": revoked,
            "failed": len(failures),
            "failures": failures,
        }
        if failures and not revoked:
            return RemediationOutcome(
                success=False,
                action=action,
                subject_id=email,
                details=details,
                error=failures[0]["error"],
            )
        return self._success(action, email, details)

    def revoke_sessions(self, email: str) -> RemediationOutcome:
        action = "revoke_sessions"
        if self.client is None:
            return self._skipped(action, email)
        try:
            revoked = self.client.revoke_sessions(email)
            return self._success(action, email, {"sessions_revoked": revoked})
        except Exception as e:
            return self._failure(action, email, e)

    def revoke_role_assignments(self, email: str) -> RemediationOutcome:
        """Remove every app-role assignment held by the subject."""
        action = "revoke_role_assignments"
        if self.client is None:
            return self._skipped(action, email)

        try:
            subject = self._require_subject(email)
            assignments = self.client.list_role_assignments(subject.id)
        except Exception as e:
            return self._failure(action, email, e)

        removed, failures = 0, []
        for assignment in assignments:
            try:
                self.client.delete_role_assignment(subject.id, assignment.id)
                removed += 1
            except Exception as e:
                logger.warning(
                    "role_assignment_removal_failed",
                    email=email,
                    assignment_id=assignment.id,
                    error=str(e),
                )
                failures.append({"assignment_id": assignment.id, "error": str(e)})

        return self._success(action, email, {
            "total_assignments": len(assignments),
            "removed": removed,
            "failed": len(failures),
            "failures": failures,
        })

    def update_grant_scopes(self, email: str, grant_id: str, scopes: List[str]) -> RemediationOutcome:
        """Narrow a grant to ``scopes``; an empty list deletes the grant."""
        action = "update_grant_scopes"
        if self.client is None:
            return self._skipped(action, email)
        try:
            if not scopes:
                self.client.delete_grant(grant_id)
                return self._success(action, email, {"grant_id": grant_id, "result": "deleted"})
            self.client.update_grant_scopes(grant_id, scopes)
            return self._success(action, email, {"grant_id": grant_id, "result": "updated", "scopes": scopes})
        except Exception as e:
            return self._failure(action, email, e)

    def full_remediation(self, email: str) -> RemediationOutcome:
        """Revoke all grants and all sessions.

        Sub-call outcomes are reported in ``details``; they do not flip the
        top-level success on their own.
        """
        action = "full_remediation"
        if self.client is None:
            return self._skipped(action, email)

        grants = self.revoke_all_grants(email)
        sessions = self.revoke_sessions(email)

        logger.info(
            "full_remediation_complete",
            email=email,
            grants_success=grants.success,
            sessions_success=sessions.success,
        )
        return self._success(action, email, {
            "grants": grants.details,
            "sessions": sessions.details,
            "grants_success": grants.success,
            "sessions_success": sessions.success,
            "grants_error": grants.error,
            "sessions_error": sessions.error,
        })

    def _require_subject(self, email: str) -> Subject:
        subject = self.client.get_subject(email)
        if subject is None:
            raise _SubjectNotFound(f"Subject not found: {email}")
        return subject

    @staticmethod
    def _success(action: str, email: str, details: Dict[str, Any]) -> RemediationOutcome:
        return RemediationOutcome(success=True, action=action, subject_id=email, details=details)

    @staticmethod
    def _skipped(action: str, email: str) -> RemediationOutcome:
        logger.info("remediation_skipped", action=action, email=email, reason="not configured")
        return RemediationOutcome(
            success=True,
            action=action,
            subject_id=email,
            details={"skipped": True, "reason": "not configured"},
        )

    @staticmethod
    def _failure(action: str, email: str, error: Exception) -> RemediationOutcome:
        is_permission = isinstance(error, IdentityAPIError) and error.is_permission_error
        status_code = error.status_code if isinstance(error, IdentityAPIError) else None
        logger.error(
            "remediation_failed",
            action=action,
            email=email,
            error=str(error),
            is_permission_error=is_permission,
        )
        return RemediationOutcome(
            success=False,
            action=action,
            subject_id=email,
            error=str(error),
            is_permission_error=is_permission,
            status_code=status_code,
        )
