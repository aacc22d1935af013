"""Frappe HR REST client."""

import json
import time
from typing import List, Optional
from urllib.parse import quote

import requests
import structlog

from accessgap.core.exceptions import HRSourceError
from accessgap.core.hr.base import HRDirectory, HRRecord, record_from_dict

logger = structlog.get_logger(__name__)

EMPLOYEE_FIELDS = [
    "name",
    "employee_name",
    "company_email",
    "status",
    "department",
    "designation",
    "relieving_date",
]


class FrappeHRClient(HRDirectory):
    """Reads employees from a Frappe/ERPNext instance.

    The employee list is cached for ``cache_ttl`` seconds. Any transport or
    HTTP failure raises HRSourceError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_secret: str,
        timeout: float = 15.0,
        cache_ttl: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"token {api_key}:{api_secret}",
            "Accept": "application/json",
        })
        self._cache: Optional[List[HRRecord]] = None
        self._cached_at = 0.0

    def _get(self, path: str, params: Optional[dict] = None) -> dict:
        try:
            response = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise HRSourceError(f"HR request failed: {e}")

        if response.status_code == 404:
            return {}
        if response.status_code >= 400:
            raise HRSourceError(f"HR request to {path} returned {response.status_code}")

        try:
            return response.json()
        except ValueError:
            raise HRSourceError(f"HR response from {path} was not JSON")

    def list_subjects(self) -> List[HRRecord]:
        if self._cache is not None and time.monotonic() - self._cached_at < self.cache_ttl:
            return list(self._cache)

        data = self._get(
            "/api/resource/Employee",
            params={"fields": json.dumps(EMPLOYEE_FIELDS), "limit_page_length": "0"},
        )
        records = [record_from_dict(item) for item in data.get("data", [])]
        self._cache = records
        self._cached_at = time.monotonic()

        logger.info("hr_employees_fetched", count=len(records))
        return list(records)

    def get_subject(self, subject_id: str) -> Optional[HRRecord]:
        data = self._get(f"/api/resource/Employee/{quote(subject_id)}")
        if not data.get("data"):
            return None
        return record_from_dict(data["data"])
