"""Exception hierarchy for accessgap."""

from typing import Optional


class AccessGapError(Exception):
    """Base exception for all accessgap errors."""

    pass


class IdentityAPIError(AccessGapError):
    """Raised when an identity provider call fails.

    Carries the logical operation name, the HTTP status code (None for
    timeouts and connection failures) and the provider's error code so
    callers can tell permission failures apart from transient ones.
    """

    NOT_FOUND_CODES = ("Request_ResourceNotFound", "ResourceNotFound", "ErrorItemNotFound")
    PERMISSION_CODES = ("Authorization_RequestDenied", "Forbidden", "AccessDenied")

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: Optional[int] = None,
        provider_code: Optional[str] = None,
    ):
        self.operation = operation
        self.message = message
        self.status_code = status_code
        self.provider_code = provider_code
        super().__init__(f"{operation}: {message}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404 or self.provider_code in self.NOT_FOUND_CODES

    @property
    def is_permission_error(self) -> bool:
        return self.status_code == 403 or self.provider_code in self.PERMISSION_CODES

    @property
    def is_transient(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class StoreError(AccessGapError):
    """Raised when the case store cannot persist or read state."""

    pass


class CaseNotFoundError(AccessGapError):
    """Raised when a case reference does not exist."""

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Case not found: {case_id}")


class FindingNotFoundError(AccessGapError):
    """Raised when a finding reference does not exist."""

    def __init__(self, finding_id: str):
        self.finding_id = finding_id
        super().__init__(f"Finding not found: {finding_id}")


class InvalidActionError(AccessGapError):
    """Raised when a remediation action name is not recognised."""

    pass


class HRSourceError(AccessGapError):
    """Raised when the HR system of record cannot be reached."""

    pass


class InvalidTransitionError(AccessGapError):
    """Raised when a case cannot move to the requested state."""

    pass
