"""Primary/fallback HR directory with a circuit breaker."""

from typing import Callable, List, Optional, TypeVar

import structlog

from accessgap.core.hr.base import HRDirectory, HRRecord
from accessgap.core.utils.circuit import CircuitBreaker

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class FallbackHRDirectory(HRDirectory):
    """Serves from ``primary`` while it is healthy, otherwise from ``fallback``.

    A primary failure opens the breaker; the primary is not retried until
    the cooldown passes. Every fallback is logged with its reason.
    """

    def __init__(
        self,
        primary: HRDirectory,
        fallback: HRDirectory,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.breaker = breaker or CircuitBreaker(failure_threshold=1, recovery_timeout=60.0, name="hr")
        self.fallback_count = 0

    @property
    def is_primary_healthy(self) -> bool:
        return self.breaker.is_healthy

    def _serve(self, operation: str, call: Callable[[HRDirectory], T]) -> T:
        if not self.breaker.allow_request():
            self.fallback_count += 1
            logger.info("hr_source_fallback", operation=operation, reason="circuit_open")
            return call(self.fallback)

        try:
            result = call(self.primary)
        except Exception as e:
            self.breaker.record_failure()
            self.fallback_count += 1
            logger.warning(
                "hr_source_fallback",
                operation=operation,
                reason="primary_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return call(self.fallback)

        self.breaker.record_success()
        return result

    def list_subjects(self) -> List[HRRecord]:
        return self._serve("list_subjects", lambda d: d.list_subjects())

    def get_subject(self, subject_id: str) -> Optional[HRRecord]:
        return self._serve("get_subject", lambda d: d.get_subject(subject_id))
