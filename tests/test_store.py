"""Tests for the SQLAlchemy case store."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from accessgap.core.exceptions import CaseNotFoundError, FindingNotFoundError, StoreError
from accessgap.core.models import (
    Artifact,
    ArtifactKind,
    ArtifactStatus,
    AuditEntry,
    Case,
    CaseStatus,
    Finding,
    FindingKind,
    RiskTier,
    Severity,
)
from accessgap.storage.sql import SQLCaseStore

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def finding(case_id, kind=FindingKind.LINGERING_OAUTH_GRANT):
    return Finding(kind=kind, severity=Severity.HIGH, summary="x", case_id=case_id)


class TestCases:
    """Tests for case persistence."""

    def test_create_assigns_prefixed_id(self, store):
        case = store.create_case(Case(subject_email="Alice@Co.com"))

        assert case.id.startswith("OBC-")
        assert case.subject_email == "alice@co.com"
        assert case.status == CaseStatus.DRAFT

    def test_read_your_writes(self, store):
        case = store.create_case(Case(subject_email="a@co.com"))
        store.update_case(case.id, status=CaseStatus.GAPS_FOUND, scheduled_remediation_date=T0)

        reread = store.get_case(case.id)
        assert reread.status == CaseStatus.GAPS_FOUND
        assert reread.scheduled_remediation_date == T0
        assert reread.modified_at is not None

    def test_update_unknown_case(self, store):
        with pytest.raises(CaseNotFoundError):
            store.update_case("OBC-NOPE", status=CaseStatus.CLOSED)

    def test_update_rejects_unknown_fields(self, store):
        case = store.create_case(Case(subject_email="a@co.com"))
        with pytest.raises(ValueError):
            store.update_case(case.id, colour="blue")

    def test_list_filters(self, store):
        store.create_case(Case(subject_email="a@co.com", created_at=T0))
        b = store.create_case(Case(subject_email="b@co.com", created_at=T0 + timedelta(hours=1)))
        store.update_case(b.id, status=CaseStatus.SCHEDULED)

        assert [c.subject_email for c in store.list_cases()] == ["b@co.com", "a@co.com"]
        assert [c.id for c in store.list_cases(status=CaseStatus.SCHEDULED)] == [b.id]
        assert [c.subject_email for c in store.list_cases(email="A@CO.COM")] == ["a@co.com"]

    def test_find_by_email_skips_closed(self, store):
        old = store.create_case(Case(subject_email="a@co.com", created_at=T0))
        newer = store.create_case(Case(subject_email="a@co.com", created_at=T0 + timedelta(days=1)))

        assert store.find_case_by_email("a@co.com").id == newer.id
        store.update_case(newer.id, status=CaseStatus.CLOSED)
        assert store.find_case_by_email("a@co.com").id == old.id
        store.update_case(old.id, status=CaseStatus.CLOSED)
        assert store.find_case_by_email("a@co.com") is None


class TestFindings:
    """Tests for finding persistence."""

    def test_create_and_close_is_idempotent(self, store):
        case = store.create_case(Case(subject_email="a@co.com"))
        created = store.create_finding(finding(case.id))

        first = store.close_finding(created.id)
        second = store.close_finding(created.id)

        assert created.id.startswith("FND-")
        assert first.closed_at == second.closed_at
        assert store.open_findings_for_case(case.id) == []
        assert len(store.findings_for_case(case.id)) == 1

    def test_finding_requires_existing_case(self, store):
        with pytest.raises(CaseNotFoundError):
            store.create_finding(finding("OBC-NOPE"))
        with pytest.raises(ValueError):
            store.create_finding(finding(None))

    def test_close_unknown(self, store):
        with pytest.raises(FindingNotFoundError):
            store.close_finding("FND-NOPE")

    def test_filter_by_kind(self, store):
        case = store.create_case(Case(subject_email="a@co.com"))
        store.create_finding(finding(case.id))
        store.create_finding(finding(case.id, FindingKind.ACCESS_REAPPEARED))

        found = store.list_findings(case_id=case.id, kind=FindingKind.ACCESS_REAPPEARED)
        assert [f.kind for f in found] == [FindingKind.ACCESS_REAPPEARED]


class TestArtifacts:
    """Tests for the artifact snapshot."""

    def test_replace_snapshot(self, store):
        case = store.create_case(Case(subject_email="a@co.com"))
        artifact = Artifact(
            kind=ArtifactKind.OAUTH_GRANT,
            subject_email="a@co.com",
            app_display_name="Mailer",
            client_id="app1",
            risk=RiskTier.HIGH,
            scopes=["Mail.Send"],
            metadata={"grant_id": "g1"},
            name="ms-grant-g1",
        )
        store.replace_artifacts(case.id, [artifact, artifact])
        store.replace_artifacts(case.id, [artifact])

        stored = store.list_artifacts(case_id=case.id)
        assert len(stored) == 1
        assert stored[0].metadata == {"grant_id": "g1"}
        assert stored[0].status == ArtifactStatus.ACTIVE
        assert store.list_artifacts(email="A@co.com")[0].scopes == ["Mail.Send"]


class TestAuditAndSettings:
    """Tests for audit log and settings."""

    def test_audit_newest_first_and_filtered(self, store):
        store.log_action(AuditEntry(action_type="Scan", target_email="a@co.com", result="Success", timestamp=T0))
        store.log_action(AuditEntry(
            action_type="Remediation",
            target_email="a@co.com",
            result="Failed",
            request={"when": T0},
            timestamp=T0 + timedelta(minutes=1),
        ))
        store.log_action(AuditEntry(action_type="Scan", target_email="b@co.com", result="Success", timestamp=T0))

        entries = store.list_audit_logs(target_email="a@co.com")
        assert [e.action_type for e in entries] == ["Remediation", "Scan"]
        assert entries[0].id.startswith("AUD-")
        assert entries[0].request == {"when": str(T0)}
        assert len(store.list_audit_logs(action_type="Scan")) == 2
        assert len(store.list_audit_logs(limit=1)) == 1

    def test_settings_seeded_and_updated(self):
        store = SQLCaseStore("sqlite://", initial_settings={"background_scan_interval": "Every Hour", "junk": 1})

        assert store.get_settings().background_scan_interval == "Every Hour"
        updated = store.update_settings(notification_email="sec@co.com")
        assert updated.notification_email == "sec@co.com"
        assert store.get_settings().background_scan_interval == "Every Hour"

    def test_unknown_setting_rejected(self, store):
        with pytest.raises(ValueError):
            store.update_settings(nonsense=True)

    def test_separate_in_memory_stores_are_isolated(self):
        first = SQLCaseStore("sqlite://")
        second = SQLCaseStore("sqlite://")
        first.create_case(Case(subject_email="a@co.com"))
        assert second.list_cases() == []


class TestStoreErrors:
    """Database failures surface as StoreError."""

    def test_wraps_sqlalchemy_errors(self, store):
        with patch.object(store, "SessionLocal") as factory:
            factory.return_value.query.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
            with pytest.raises(StoreError):
                store.list_cases()
