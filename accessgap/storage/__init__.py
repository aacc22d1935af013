"""Case, finding and audit persistence."""

from accessgap.storage.base import CaseStore
from accessgap.storage.sql import SQLCaseStore

__all__ = ["CaseStore", "SQLCaseStore"]
