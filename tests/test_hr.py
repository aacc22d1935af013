"""Tests for HR directories and the fallback wrapper."""

from datetime import date
from unittest.mock import Mock

import pytest
import requests
import yaml

from accessgap.core.exceptions import HRSourceError
from accessgap.core.hr import (
    FallbackHRDirectory,
    FrappeHRClient,
    HRRecord,
    StaticHRDirectory,
    create_hr_directory_from_config,
)
from accessgap.core.hr.base import record_from_dict
from accessgap.core.utils.circuit import CircuitBreaker

EMPLOYEES = [
    {"name": "HR-001", "employee_name": "Alice", "company_email": "Alice@co.com",
     "status": "Left", "relieving_date": "2024-05-31"},
    {"name": "HR-002", "employee_name": "Bob", "company_email": "bob@co.com", "status": "Active"},
]


def frappe_response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {"data": EMPLOYEES}
    return response


@pytest.fixture
def hr_file(tmp_path):
    path = tmp_path / "employees.yaml"
    path.write_text(yaml.dump({"employees": EMPLOYEES}))
    return path


class TestRecords:
    """Tests for record parsing."""

    def test_record_from_frappe_fields(self):
        record = record_from_dict(EMPLOYEES[0])

        assert record.id == "HR-001"
        assert record.email == "alice@co.com"
        assert record.is_offboarded
        assert record.effective_date == date(2024, 5, 31)

    def test_unknown_status_is_active(self):
        assert record_from_dict({"name": "x", "status": "On Leave"}).status == "Active"


class TestStaticDirectory:
    """Tests for StaticHRDirectory."""

    def test_from_file(self, hr_file):
        directory = StaticHRDirectory.from_file(hr_file)

        assert [r.email for r in directory.list_offboarded_subjects()] == ["alice@co.com"]
        assert directory.get_subject("HR-002").name == "Bob"
        assert directory.find_by_email("BOB@co.com").id == "HR-002"

    def test_missing_file(self, tmp_path):
        with pytest.raises(HRSourceError):
            StaticHRDirectory.from_file(tmp_path / "missing.yaml")


class TestFrappeClient:
    """Tests for FrappeHRClient."""

    def test_lists_employees_with_token_header(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.get.return_value = frappe_response()
        client = FrappeHRClient("https://hr.example.com/", "key", "secret", session=session)

        records = client.list_subjects()

        assert [r.id for r in records] == ["HR-001", "HR-002"]
        assert session.headers["Authorization"] == "token key:secret"
        assert session.get.call_args.args[0] == "https://hr.example.com/api/resource/Employee"

    def test_list_is_cached(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.get.return_value = frappe_response()
        client = FrappeHRClient("https://hr.example.com", "k", "s", cache_ttl=60, session=session)

        client.list_subjects()
        client.list_subjects()

        assert session.get.call_count == 1

    def test_transport_error(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.get.side_effect = requests.ConnectionError("refused")
        client = FrappeHRClient("https://hr.example.com", "k", "s", session=session)

        with pytest.raises(HRSourceError):
            client.list_subjects()

    def test_http_error(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.get.return_value = frappe_response(500, {})
        client = FrappeHRClient("https://hr.example.com", "k", "s", session=session)

        with pytest.raises(HRSourceError):
            client.list_subjects()


class TestFallbackDirectory:
    """Tests for the primary/fallback decorator."""

    def make(self, primary, now):
        fallback = StaticHRDirectory([HRRecord(id="F-1", name="Fallback", email="f@co.com", status="Left")])
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=lambda: now[0], name="hr")
        return FallbackHRDirectory(primary, fallback, breaker)

    def test_serves_primary_when_healthy(self):
        primary = StaticHRDirectory([HRRecord(id="P-1", name="Primary", email="p@co.com", status="Left")])
        directory = self.make(primary, [0.0])

        assert [r.id for r in directory.list_offboarded_subjects()] == ["P-1"]
        assert directory.fallback_count == 0
        assert directory.is_primary_healthy

    def test_falls_back_and_cools_down(self):
        now = [0.0]
        primary = Mock()
        primary.list_subjects.side_effect = HRSourceError("down")
        directory = self.make(primary, now)

        assert [r.id for r in directory.list_subjects()] == ["F-1"]
        assert not directory.is_primary_healthy

        # Circuit open: primary not retried during cooldown
        directory.list_subjects()
        assert primary.list_subjects.call_count == 1
        assert directory.fallback_count == 2

        # After cooldown a probe succeeds and closes the circuit
        now[0] = 61.0
        primary.list_subjects.side_effect = None
        primary.list_subjects.return_value = [HRRecord(id="P-1", name="P", email="p@co.com")]
        assert [r.id for r in directory.list_subjects()] == ["P-1"]
        assert directory.is_primary_healthy

    def test_failed_probe_reopens(self):
        now = [0.0]
        primary = Mock()
        primary.get_subject.side_effect = HRSourceError("down")
        directory = self.make(primary, now)

        directory.get_subject("x")
        now[0] = 61.0
        directory.get_subject("x")

        assert primary.get_subject.call_count == 2
        assert directory.breaker.state == "open"


class TestFromConfig:
    """Tests for create_hr_directory_from_config."""

    def test_nothing_configured(self):
        assert create_hr_directory_from_config({}) is None

    def test_file_only(self, hr_file):
        directory = create_hr_directory_from_config({"hr": {"fallback_file": str(hr_file)}})
        assert isinstance(directory, StaticHRDirectory)

    def test_primary_with_fallback(self, hr_file):
        directory = create_hr_directory_from_config({
            "hr": {
                "base_url": "https://hr.example.com",
                "api_key": "k",
                "api_secret": "s",
                "fallback_file": str(hr_file),
                "cooldown_seconds": 30,
            }
        })

        assert isinstance(directory, FallbackHRDirectory)
        assert isinstance(directory.primary, FrappeHRClient)
        assert directory.breaker.recovery_timeout == 30.0
