"""HR system of record collaborators."""

from pathlib import Path
from typing import Any, Dict, Optional

from accessgap.core.hr.base import HRDirectory, HRRecord
from accessgap.core.hr.fallback import FallbackHRDirectory
from accessgap.core.hr.frappe import FrappeHRClient
from accessgap.core.hr.static import StaticHRDirectory
from accessgap.core.utils.circuit import CircuitBreaker


def create_hr_directory_from_config(config: Dict[str, Any]) -> Optional[HRDirectory]:
    """Build the HR directory described by the ``hr`` config section.

    With both a live endpoint and a fallback file the result is a
    FallbackHRDirectory. Returns None when nothing is configured.
    """
    hr = config.get("hr") or {}
    fallback = StaticHRDirectory.from_file(Path(hr["fallback_file"])) if hr.get("fallback_file") else None

    if not hr.get("base_url"):
        return fallback

    primary = FrappeHRClient(
        base_url=hr["base_url"],
        api_key=hr.get("api_key", ""),
        api_secret=hr.get("api_secret", ""),
        timeout=float(hr.get("timeout", 15)),
        cache_ttl=float(hr.get("cache_ttl", 60)),
    )
    if fallback is None:
        return primary

    breaker = CircuitBreaker(
        failure_threshold=int(hr.get("failure_threshold", 1)),
        recovery_timeout=float(hr.get("cooldown_seconds", 60)),
        name="hr",
    )
    return FallbackHRDirectory(primary, fallback, breaker)


__all__ = [
    "FallbackHRDirectory",
    "FrappeHRClient",
    "HRDirectory",
    "HRRecord",
    "StaticHRDirectory",
    "create_hr_directory_from_config",
]
