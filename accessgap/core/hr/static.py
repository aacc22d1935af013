"""HR directory backed by a local YAML or JSON file."""

from pathlib import Path
from typing import Iterable, List, Optional

import structlog
import yaml

from accessgap.core.exceptions import HRSourceError
from accessgap.core.hr.base import HRDirectory, HRRecord, record_from_dict

logger = structlog.get_logger(__name__)


class StaticHRDirectory(HRDirectory):
    """In-memory employee list, typically loaded from a fallback file."""

    def __init__(self, records: Optional[Iterable[HRRecord]] = None):
        self._records = list(records or [])

    @classmethod
    def from_file(cls, path: Path) -> "StaticHRDirectory":
        """Load employees from a file with an ``employees`` list.

        Raises:
            HRSourceError: If the file is missing or malformed
        """
        path = Path(path)
        if not path.exists():
            raise HRSourceError(f"HR fallback file not found: {path}")
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise HRSourceError(f"Invalid HR fallback file {path}: {e}")

        entries = data.get("employees", []) if isinstance(data, dict) else data
        records = [record_from_dict(item) for item in entries or []]
        logger.info("hr_fallback_file_loaded", path=str(path), count=len(records))
        return cls(records)

    def list_subjects(self) -> List[HRRecord]:
        return list(self._records)

    def get_subject(self, subject_id: str) -> Optional[HRRecord]:
        for record in self._records:
            if record.id == subject_id:
                return record
        return None
