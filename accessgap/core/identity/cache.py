"""Process-wide memo of resolved application identities."""

import threading
from typing import Dict, Optional, Tuple

import structlog

from accessgap.core.models import AppIdentity

logger = structlog.get_logger(__name__)


class AppIdentityCache:
    """Append-only cache of application identities keyed by id.

    Application identities are long-lived, so entries are never evicted.
    Only confirmed not-found lookups are stored as None; failed lookups are
    not cached. Call ``clear()`` to reset between test runs.
    """

    def __init__(self):
        self._entries: Dict[str, Optional[AppIdentity]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def lookup(self, key: str) -> Tuple[bool, Optional[AppIdentity]]:
        """Return ``(found, identity)``; a found None is a cached not-found."""
        with self._lock:
            if key in self._entries:
                self.hits += 1
                return True, self._entries[key]
            self.misses += 1
        return False, None

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def set(self, key: str, identity: Optional[AppIdentity]) -> None:
        with self._lock:
            self._entries[key] = identity

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
        logger.debug("app_identity_cache_cleared")

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, int]:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": int(self.hits * 100 / total) if total else 0,
        }
