"""Tests for the remediation orchestrator."""

from unittest.mock import Mock

import pytest

from conftest import permission_denied

from accessgap.core.exceptions import IdentityAPIError
from accessgap.core.models import RoleAssignment
from accessgap.core.remediation import RemediationOrchestrator


class TestUnconfigured:
    """Without a client every action is a skipped success."""

    @pytest.mark.parametrize(
        "call",
        [
            lambda o: o.revoke_grant("a@co.com", "g1"),
            lambda o: o.revoke_all_grants("a@co.com"),
            lambda o: o.revoke_grants_for_app("a@co.com", "app"),
            lambda o: o.revoke_sessions("a@co.com"),
            lambda o: o.revoke_role_assignments("a@co.com"),
            lambda o: o.update_grant_scopes("a@co.com", "g1", ["openid"]),
            lambda o: o.full_remediation("a@co.com"),
        ],
    )
    def test_skipped(self, call):
        outcome = call(RemediationOrchestrator(None))

        assert outcome.success is True
        assert outcome.details == {"skipped": True, "reason": "not configured"}
        assert outcome.skipped

    def test_no_network_calls(self, fake_client):
        orchestrator = RemediationOrchestrator(None)
        orchestrator.full_remediation("a@co.com")
        assert fake_client.calls == []


class TestRevokeAllGrants:
    """Tests for revoke_all_grants."""

    def test_revokes_everything(self, fake_client, alice):
        outcome = RemediationOrchestrator(fake_client).revoke_all_grants("alice@co.com")

        assert outcome.success
        assert outcome.details["total_grants"] == 3
        assert outcome.details["revoked"] == 3
        assert fake_client.grants[alice.id] == []

    def test_partial_failure_is_isolated(self, fake_client, alice):
        fake_client.fail_grants["g2"] = permission_denied()

        outcome = RemediationOrchestrator(fake_client).revoke_all_grants("alice@co.com")

        assert outcome.success
        assert outcome.details["revoked"] == 2
        assert outcome.details["failed"] == 1
        failed = [g for g in outcome.details["grants"] if not g["success"]]
        assert failed[0]["grant_id"] == "g2"
        assert failed[0]["is_permission_error"] is True
        # Successful deletions are not rolled back
        assert [g.id for g in fake_client.grants[alice.id]] == ["g2"]

    def test_unknown_subject(self, fake_client):
        outcome = RemediationOrchestrator(fake_client).revoke_all_grants("ghost@co.com")

        assert not outcome.success
        assert "Subject not found" in outcome.error

    def test_listing_permission_error(self, fake_client, alice):
        fake_client.fail["list_oauth_grants"] = permission_denied("list_oauth_grants")

        outcome = RemediationOrchestrator(fake_client).revoke_all_grants("alice@co.com")

        assert not outcome.success
        assert outcome.is_permission_error
        assert outcome.status_code == 403


class TestTargetedActions:
    """Tests for per-app, session, role and scope actions."""

    def test_revoke_for_app_by_app_id(self, fake_client, alice):
        outcome = RemediationOrchestrator(fake_client).revoke_grants_for_app("alice@co.com", "app-cal")

        assert outcome.success
        assert outcome.details["matching_grants"] == 1
        assert outcome.details["service_principal_id"] == "sp-cal"
        assert [g.id for g in fake_client.grants[alice.id]] == ["g1", "g2"]

    def test_revoke_for_app_by_object_id(self, fake_client, alice):
        outcome = RemediationOrchestrator(fake_client).revoke_grants_for_app("alice@co.com", "sp-notes")

        assert outcome.details["revoked"] == 1

    def test_revoke_for_app_all_failed(self, fake_client, alice):
        fake_client.fail_grants["g1"] = IdentityAPIError("delete_grant", "server error", 500)

        outcome = RemediationOrchestrator(fake_client).revoke_grants_for_app("alice@co.com", "app-mailer")

        assert not outcome.success
        assert "server error" in outcome.error

    def test_revoke_sessions_failure(self, fake_client):
        fake_client.fail["revoke_sessions"] = permission_denied("revoke_sessions")

        outcome = RemediationOrchestrator(fake_client).revoke_sessions("a@co.com")

        assert not outcome.success
        assert outcome.is_permission_error

    def test_revoke_role_assignments(self, fake_client):
        subject = fake_client.add_subject("a@co.com")
        fake_client.roles[subject.id] = [
            RoleAssignment(id="ra1", app_role_id="r", resource_id="sp1"),
            RoleAssignment(id="ra2", app_role_id="r", resource_id="sp2"),
        ]

        outcome = RemediationOrchestrator(fake_client).revoke_role_assignments("a@co.com")

        assert outcome.details["removed"] == 2
        assert fake_client.roles[subject.id] == []

    def test_update_grant_scopes(self, fake_client, alice):
        orchestrator = RemediationOrchestrator(fake_client)

        narrowed = orchestrator.update_grant_scopes("alice@co.com", "g1", ["openid"])
        emptied = orchestrator.update_grant_scopes("alice@co.com", "g2", [])

        assert narrowed.details["result"] == "updated"
        assert emptied.details["result"] == "deleted"
        assert [(g.id, g.scope) for g in fake_client.grants[alice.id]] == [("g1", "openid"), ("g3", "Calendars.Read")]

    def test_revoke_grant_never_raises(self):
        client = Mock()
        client.delete_grant.side_effect = RuntimeError("socket closed")

        outcome = RemediationOrchestrator(client).revoke_grant("a@co.com", "g1")

        assert not outcome.success
        assert outcome.error == "socket closed"
        assert outcome.status_code is None


class TestFullRemediation:
    """Tests for full_remediation."""

    def test_composes_grants_and_sessions(self, fake_client, alice):
        outcome = RemediationOrchestrator(fake_client).full_remediation("alice@co.com")

        assert outcome.success
        assert outcome.details["grants_success"] is True
        assert outcome.details["sessions_success"] is True
        assert outcome.details["grants"]["revoked"] == 3
        assert fake_client.revoked_sessions == ["alice@co.com"]

    def test_sub_failure_reported_in_details(self, fake_client, alice):
        fake_client.fail["revoke_sessions"] = permission_denied("revoke_sessions")

        outcome = RemediationOrchestrator(fake_client).full_remediation("alice@co.com")

        assert outcome.success
        assert outcome.details["sessions_success"] is False
        assert outcome.details["sessions_error"]
        assert outcome.to_dict()["action"] == "full_remediation"
