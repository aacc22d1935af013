"""HR system of record interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

OFFBOARDED_STATUSES = ("Left",)


@dataclass
class HRRecord:
    """An employee as known to the HR system."""

    id: str
    name: str
    email: str
    status: str = "Active"
    effective_date: Optional[date] = None
    department: Optional[str] = None
    designation: Optional[str] = None

    @property
    def is_offboarded(self) -> bool:
        return self.status in OFFBOARDED_STATUSES


def normalize_status(raw: Optional[str]) -> str:
    if raw == "Left":
        return "Left"
    if raw == "Suspended":
        return "Suspended"
    return "Active"


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def record_from_dict(data: Dict[str, Any]) -> HRRecord:
    """Build an HRRecord from a Frappe-style employee mapping."""
    return HRRecord(
        id=str(data.get("name") or data.get("id") or data.get("employee_id") or ""),
        name=data.get("employee_name") or data.get("full_name") or "",
        email=(data.get("company_email") or data.get("email") or "").lower(),
        status=normalize_status(data.get("status")),
        effective_date=parse_date(data.get("relieving_date") or data.get("effective_date")),
        department=data.get("department"),
        designation=data.get("designation"),
    )


class HRDirectory(ABC):
    """Read-only view of the HR system. The engine never writes back."""

    @abstractmethod
    def list_subjects(self) -> List[HRRecord]:
        ...

    def list_offboarded_subjects(self) -> List[HRRecord]:
        return [r for r in self.list_subjects() if r.is_offboarded and r.email]

    @abstractmethod
    def get_subject(self, subject_id: str) -> Optional[HRRecord]:
        ...

    def find_by_email(self, email: str) -> Optional[HRRecord]:
        email = email.lower()
        for record in self.list_subjects():
            if record.email == email:
                return record
        return None
