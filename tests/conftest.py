"""Pytest configuration and fixtures for AccessGap tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from accessgap.core.discovery import DiscoveryService
from accessgap.core.exceptions import IdentityAPIError
from accessgap.core.models import AppIdentity, Grant, LicenseDetail, RoleAssignment, Subject
from accessgap.core.reconciliation import ReconciliationEngine
from accessgap.core.remediation import RemediationOrchestrator
from accessgap.storage.sql import SQLCaseStore


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeIdentityClient:
    """In-memory stand-in for IdentityClient.

    Deletes mutate the stored state, so a rediscovery after remediation
    sees what is left. ``fail`` maps an operation name to the exception it
    raises; ``fail_grants`` does the same per grant id for delete_grant.
    """

    def __init__(self):
        self.subjects: Dict[str, Subject] = {}
        self.grants: Dict[str, List[Grant]] = {}
        self.roles: Dict[str, List[RoleAssignment]] = {}
        self.licenses: Dict[str, List[LicenseDetail]] = {}
        self.apps: Dict[str, AppIdentity] = {}
        self.fail: Dict[str, Exception] = {}
        self.fail_grants: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.revoked_sessions: List[str] = []

    def add_subject(self, email: str, enabled: bool = False, name: str = "") -> Subject:
        subject = Subject(id=f"uid-{email.split('@')[0]}", email=email, display_name=name, enabled=enabled)
        self.subjects[email.lower()] = subject
        self.grants.setdefault(subject.id, [])
        self.roles.setdefault(subject.id, [])
        return subject

    def add_grant(self, email: str, grant_id: str, client_id: str, scope: str) -> Grant:
        subject = self.subjects[email.lower()]
        grant = Grant(id=grant_id, client_id=client_id, resource_id="res-graph", principal_id=subject.id, scope=scope)
        self.grants[subject.id].append(grant)
        return grant

    def add_app(self, object_id: str, app_id: str, name: str) -> AppIdentity:
        app = AppIdentity(id=object_id, app_id=app_id, display_name=name)
        self.apps[object_id] = app
        return app

    def _record(self, operation: str, key: Any = None) -> None:
        self.calls.append((operation, key))
        error = self.fail.get(operation)
        if error is not None:
            raise error

    def get_subject(self, email_or_id: str) -> Optional[Subject]:
        self._record("get_subject", email_or_id)
        return self.subjects.get(email_or_id.lower())

    def list_oauth_grants(self, subject_id: str) -> List[Grant]:
        self._record("list_oauth_grants", subject_id)
        return list(self.grants.get(subject_id, []))

    def list_role_assignments(self, subject_id: str) -> List[RoleAssignment]:
        self._record("list_role_assignments", subject_id)
        return list(self.roles.get(subject_id, []))

    def list_license_entitlements(self, email: str) -> List[LicenseDetail]:
        self._record("list_license_entitlements", email)
        return list(self.licenses.get(email.lower(), []))

    def delete_grant(self, grant_id: str) -> bool:
        self._record("delete_grant", grant_id)
        if grant_id in self.fail_grants:
            raise self.fail_grants[grant_id]
        for subject_id, grants in self.grants.items():
            self.grants[subject_id] = [g for g in grants if g.id != grant_id]
        return True

    def update_grant_scopes(self, grant_id: str, scopes: List[str]) -> bool:
        self._record("update_grant_scopes", grant_id)
        for grants in self.grants.values():
            for grant in grants:
                if grant.id == grant_id:
                    grant.scope = " ".join(scopes)
        return True

    def delete_role_assignment(self, subject_id: str, assignment_id: str) -> bool:
        self._record("delete_role_assignment", assignment_id)
        self.roles[subject_id] = [r for r in self.roles.get(subject_id, []) if r.id != assignment_id]
        return True

    def revoke_sessions(self, subject_id: str) -> bool:
        self._record("revoke_sessions", subject_id)
        self.revoked_sessions.append(subject_id)
        return True

    def resolve_application(self, client_or_app_id: str) -> Optional[AppIdentity]:
        self._record("resolve_application", client_or_app_id)
        if client_or_app_id in self.apps:
            return self.apps[client_or_app_id]
        for app in self.apps.values():
            if app.app_id == client_or_app_id:
                return app
        return None

    def list_applications(self, ids) -> Dict[str, Optional[AppIdentity]]:
        return {i: self.resolve_application(i) for i in sorted({i for i in ids if i})}


def permission_denied(operation: str = "delete_grant") -> IdentityAPIError:
    return IdentityAPIError(operation, "Insufficient privileges", 403, "Authorization_RequestDenied")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeIdentityClient:
    return FakeIdentityClient()


@pytest.fixture
def store() -> SQLCaseStore:
    """Fresh in-memory case store."""
    return SQLCaseStore("sqlite://")


@pytest.fixture
def engine(store, fake_client, clock) -> ReconciliationEngine:
    return ReconciliationEngine(
        store=store,
        discovery=DiscoveryService(fake_client, max_workers=2),
        orchestrator=RemediationOrchestrator(fake_client),
        actor="tester",
        clock=clock,
    )


@pytest.fixture
def alice(fake_client) -> Subject:
    """Disabled subject holding three grants, one of them high risk."""
    subject = fake_client.add_subject("alice@co.com", enabled=False, name="Alice Example")
    fake_client.add_app("sp-mailer", "app-mailer", "Mailer Pro")
    fake_client.add_app("sp-notes", "app-notes", "Notes Sync")
    fake_client.add_app("sp-cal", "app-cal", "Calendar Helper")
    fake_client.add_grant("alice@co.com", "g1", "sp-mailer", "openid Mail.ReadWrite")
    fake_client.add_grant("alice@co.com", "g2", "sp-notes", "openid profile")
    fake_client.add_grant("alice@co.com", "g3", "sp-cal", "Calendars.Read")
    return subject


@pytest.fixture
def sample_config() -> Dict[str, Any]:
    """Provide a sample configuration for testing."""
    return {
        "identity_provider": {
            "access_token": "test-token",
            "timeout": 10,
        },
        "storage": {
            "database_url": "sqlite://",
        },
        "notifications": {
            "email": {
                "enabled": False,
            }
        },
        "settings": {
            "background_scan_interval": "Every Hour",
        },
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, sample_config: Dict[str, Any]) -> Path:
    """Create a temporary config file for testing."""
    import yaml

    config_file = tmp_path / "config.yaml"
    with open(config_file, "w") as f:
        yaml.dump(sample_config, f)

    return config_file
