"""Shared utilities."""

from accessgap.core.utils.circuit import CircuitBreaker, CircuitOpenError
from accessgap.core.utils.concurrent import ConcurrentProcessor

__all__ = ["CircuitBreaker", "CircuitOpenError", "ConcurrentProcessor"]
