"""Circuit breaker for unreliable upstream sources."""

import time
from typing import Any, Callable, Optional, Type, TypeVar

import structlog

from accessgap.core.exceptions import AccessGapError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitOpenError(AccessGapError):
    """Raised when a call is refused because the circuit is open."""

    pass


class CircuitBreaker:
    """Circuit breaker with closed, open and half_open states.

    After ``failure_threshold`` consecutive failures the circuit opens and
    calls are refused until ``recovery_timeout`` seconds have passed; the
    next call is then a half-open probe.
    """

    def __init__(
        self,
        failure_threshold: int = 1,
        recovery_timeout: float = 60.0,
        expected_exception: Type[Exception] = Exception,
        clock: Optional[Callable[[], float]] = None,
        name: str = "default",
    ):
        """Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            recovery_timeout: Seconds to wait before attempting recovery
            expected_exception: Exception type to track
            clock: Monotonic time source (injected in tests)
            name: Label used in log events
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.clock = clock or time.monotonic
        self.name = name

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"

    @property
    def is_healthy(self) -> bool:
        return self.state == "closed"

    def allow_request(self) -> bool:
        """Return True if a call may be attempted now."""
        if self.state != "open":
            return True
        if self.last_failure_time is not None and self.clock() - self.last_failure_time >= self.recovery_timeout:
            self.state = "half_open"
            logger.info("circuit_breaker_half_open", circuit=self.name)
            return True
        return False

    def record_success(self) -> None:
        if self.state != "closed":
            logger.info("circuit_breaker_closed", circuit=self.name)
        self.state = "closed"
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self.clock()

        logger.warning(
            "circuit_breaker_failure",
            circuit=self.name,
            failure_count=self.failure_count,
            threshold=self.failure_threshold,
        )

        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            self.state = "open"
            logger.error("circuit_breaker_opened", circuit=self.name, cooldown=self.recovery_timeout)

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call function with circuit breaker protection.

        Raises:
            CircuitOpenError: If the circuit is open
        """
        if not self.allow_request():
            raise CircuitOpenError(f"Circuit '{self.name}' is open")

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            self.record_failure()
            raise

        self.record_success()
        return result
