"""Tests for CLI commands."""

import logging

import click
import pytest
import structlog
from click.testing import CliRunner

from accessgap.cli.commands.settings import coerce_setting
from accessgap.cli.main import cli
from accessgap.core.models import CaseStatus


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, engine):
    """Invoke the CLI against the in-memory engine."""
    def _invoke(args, **kwargs):
        return runner.invoke(cli, args, obj={"engine": engine}, **kwargs)
    return _invoke


class TestCLI:
    """Tests for main CLI."""

    def test_cli_help(self, runner):
        """Test CLI help output."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "AccessGap" in result.output
        for command in ("scan", "remediate", "cases", "findings", "apps", "schedule"):
            assert command in result.output

    def test_cli_version(self, runner):
        """Test version command."""
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "AccessGap" in result.output

    def test_cli_with_version_option(self, runner):
        """Test --version option."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "accessgap" in result.output.lower()

    @pytest.mark.parametrize("flag", ["--verbose", "--debug"])
    def test_logging_flags(self, runner, flag):
        """Test that verbosity flags reconfigure logging."""
        try:
            result = runner.invoke(cli, [flag, "version"])
        finally:
            structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING))

        assert result.exit_code == 0, result.output
        assert "AccessGap" in result.output

    def test_engine_built_from_config(self, runner, temp_config_file):
        result = runner.invoke(cli, ["--config", str(temp_config_file), "settings", "show"])

        assert result.exit_code == 0, result.output
        assert "Every Hour" in result.output

    def test_missing_config(self, runner, tmp_path):
        result = runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "cases", "list"])
        assert result.exit_code != 0


class TestCasesCommands:
    """Tests for the cases group."""

    def test_list_empty(self, invoke):
        result = invoke(["cases", "list"])
        assert result.exit_code == 0
        assert "No cases found" in result.output

    def test_create(self, invoke, engine, alice):
        result = invoke(["cases", "create", "alice@co.com", "--name", "Alice Example"])

        assert result.exit_code == 0, result.output
        [case] = engine.store.list_cases()
        assert case.id in result.output
        assert case.subject_name == "Alice Example"
        assert case.status == CaseStatus.DRAFT

    def test_create_is_idempotent(self, invoke, engine, alice):
        invoke(["cases", "create", "alice@co.com"])
        invoke(["cases", "create", "ALICE@co.com"])

        assert len(engine.store.list_cases()) == 1

    def test_create_and_scan(self, invoke, engine, alice):
        result = invoke(["cases", "create", "alice@co.com", "--scan"])

        assert result.exit_code == 0, result.output
        [case] = engine.store.list_cases()
        assert case.status == CaseStatus.GAPS_FOUND
        assert engine.store.open_findings_for_case(case.id)

    def test_show_unknown(self, invoke):
        result = invoke(["cases", "show", "OBC-missing"])
        assert result.exit_code == 1
        assert "Case not found" in result.output

    def test_show(self, invoke, engine, alice):
        case = engine.create_case_for_subject("alice@co.com")
        engine.trigger_scan(case.id)

        result = invoke(["cases", "show", case.id])

        assert result.exit_code == 0, result.output
        assert "alice@co.com" in result.output

    def test_schedule(self, invoke, engine, alice):
        case = engine.create_case_for_subject("alice@co.com")

        result = invoke(["cases", "schedule", case.id, "--in-days", "7"])

        assert result.exit_code == 0, result.output
        updated = engine.store.get_case(case.id)
        assert updated.status == CaseStatus.SCHEDULED
        assert updated.scheduled_remediation_date is not None

    def test_schedule_requires_one_option(self, invoke, engine, alice):
        case = engine.create_case_for_subject("alice@co.com")

        result = invoke(["cases", "schedule", case.id])

        assert result.exit_code == 1
        assert engine.store.get_case(case.id).status == CaseStatus.DRAFT

    def test_schedule_closed_case_rejected(self, invoke, engine, alice):
        case = engine.create_case_for_subject("alice@co.com")
        engine.close_case(case.id)

        result = invoke(["cases", "schedule", case.id, "--in-days", "1"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_close(self, invoke, engine, alice):
        case = engine.create_case_for_subject("alice@co.com")

        result = invoke(["cases", "close", case.id, "--note", "handled manually"])

        assert result.exit_code == 0, result.output
        closed = engine.store.get_case(case.id)
        assert closed.status == CaseStatus.CLOSED
        assert "handled manually" in closed.notes

    def test_offboard_without_hr(self, invoke):
        result = invoke(["cases", "offboard", "alice@co.com"])
        assert result.exit_code == 1
        assert "HR directory not configured" in result.output


class TestScanCommands:
    """Tests for the scan group."""

    def test_scan_case(self, invoke, engine, alice):
        case = engine.create_case_for_subject("alice@co.com")

        result = invoke(["scan", "case", case.id])

        assert result.exit_code == 0, result.output
        assert engine.store.get_case(case.id).status == CaseStatus.GAPS_FOUND

    def test_scan_unknown_case(self, invoke):
        result = invoke(["scan", "case", "OBC-missing"])
        assert result.exit_code == 1

    def test_scan_subject_persists_nothing(self, invoke, engine, alice):
        result = invoke(["scan", "subject", "alice@co.com"])

        assert result.exit_code == 0, result.output
        assert "Alice Example" in result.output
        assert engine.store.list_cases() == []

    def test_scan_subject_unknown(self, invoke):
        result = invoke(["scan", "subject", "ghost@co.com"])
        assert result.exit_code == 0


class TestRemediateCommand:
    """Tests for the remediate command."""

    def test_full_bundle(self, invoke, engine, fake_client, alice):
        case = engine.create_case_for_subject("alice@co.com")
        engine.trigger_scan(case.id)

        result = invoke(["remediate", case.id, "--yes"])

        assert result.exit_code == 0, result.output
        assert fake_client.grants[alice.id] == []
        assert engine.store.get_case(case.id).status == CaseStatus.REMEDIATED

    def test_cancelled(self, invoke, engine, fake_client, alice):
        case = engine.create_case_for_subject("alice@co.com")

        result = invoke(["remediate", case.id], input="n\n")

        assert result.exit_code == 0
        assert "cancelled" in result.output
        assert len(fake_client.grants[alice.id]) == 3

    def test_unknown_action(self, invoke, engine, fake_client, alice):
        case = engine.create_case_for_subject("alice@co.com")

        result = invoke(["remediate", case.id, "--action", "wipe_everything", "--yes"])

        assert result.exit_code == 2
        assert len(fake_client.grants[alice.id]) == 3

    def test_revoke_single_app(self, invoke, engine, fake_client, alice):
        case = engine.create_case_for_subject("alice@co.com")

        result = invoke(["remediate", case.id, "-a", "revoke_token", "--client-id", "sp-notes", "-y"])

        assert result.exit_code == 0, result.output
        assert sorted(g.id for g in fake_client.grants[alice.id]) == ["g1", "g3"]


class TestFindingsCommands:
    """Tests for the findings group."""

    def test_list_none(self, invoke):
        result = invoke(["findings", "list"])
        assert result.exit_code == 0
        assert "No findings" in result.output

    def test_remediate_finding(self, invoke, engine, alice):
        case = engine.create_case_for_subject("alice@co.com")
        finding = engine.trigger_scan(case.id).new_findings[0]

        result = invoke(["findings", "remediate", finding.id])

        assert result.exit_code == 0, result.output
        assert not engine.store.get_finding(finding.id).is_open

    def test_remediate_unknown_finding(self, invoke):
        result = invoke(["findings", "remediate", "F-missing"])
        assert result.exit_code == 1


class TestSettingsCommands:
    """Tests for the settings group."""

    def test_set_and_show(self, invoke, engine):
        result = invoke(["settings", "set", "notification_email", "secops@co.com"])
        assert result.exit_code == 0, result.output
        assert engine.settings.notification_email == "secops@co.com"

        result = invoke(["settings", "show"])
        assert "secops@co.com" in result.output

    def test_set_boolean(self, invoke, engine):
        invoke(["settings", "set", "background_scan_enabled", "yes"])
        assert engine.settings.background_scan_enabled is True

    def test_unknown_key(self, invoke):
        result = invoke(["settings", "set", "nope", "1"])
        assert result.exit_code == 2

    def test_invalid_interval(self, invoke, engine):
        result = invoke(["settings", "set", "background_scan_interval", "sometimes"])

        assert result.exit_code == 2
        assert engine.settings.background_scan_interval == "Daily"

    def test_coerce_setting(self):
        assert coerce_setting("auto_scan_on_offboard", "TRUE") is True
        assert coerce_setting("auto_scan_on_offboard", "off") is False
        assert coerce_setting("notification_email", "none") is None
        assert coerce_setting("remediation_check_interval", "6h") == "6h"

        with pytest.raises(click.BadParameter):
            coerce_setting("auto_scan_on_offboard", "maybe")


class TestOtherCommands:
    """Tests for schedule, subject, audit and apps."""

    def test_schedule_run_once(self, invoke, engine, fake_client, alice, clock):
        case = engine.create_case_for_subject("alice@co.com")
        engine.schedule_remediation(case.id, clock())

        result = invoke(["schedule", "run", "--once"])

        assert result.exit_code == 0, result.output
        assert "remediation_check" in result.output
        assert engine.store.get_case(case.id).status == CaseStatus.REMEDIATED

    def test_schedule_intervals(self, invoke):
        result = invoke(["schedule", "intervals"])
        assert result.exit_code == 0
        assert "Every 6 Hours" in result.output

    def test_subject(self, invoke, engine, alice):
        engine.create_case_for_subject("alice@co.com")

        result = invoke(["subject", "alice@co.com"])

        assert result.exit_code == 0, result.output
        assert "alice@co.com" in result.output

    def test_audit(self, invoke, engine, alice):
        engine.create_case_for_subject("alice@co.com")

        result = invoke(["audit", "--email", "alice@co.com"])

        assert result.exit_code == 0, result.output
        assert "Audit Log (1)" in result.output

    def test_audit_empty(self, invoke):
        result = invoke(["audit"])
        assert "No audit entries" in result.output

    def test_apps_list(self, invoke, alice):
        result = invoke(["apps", "list", "--email", "alice@co.com"])

        assert result.exit_code == 0, result.output
        assert "Active Applications" in result.output

    def test_apps_revoke(self, invoke, fake_client, alice):
        result = invoke(["apps", "revoke", "sp-mailer", "--email", "alice@co.com", "--yes"])

        assert result.exit_code == 0, result.output
        assert "g1" not in [g.id for g in fake_client.grants[alice.id]]
