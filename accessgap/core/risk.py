"""Risk classification of OAuth scopes."""

from typing import Iterable, Optional, Union

from accessgap.core.models import RiskTier

# Tenant-wide or directory-role control
CRITICAL_SCOPES = [
    "full_access_as_app",
    "Exchange.ManageAsApp",
    "RoleManagement.ReadWrite.Directory",
]

HIGH_RISK_SCOPES = [
    "Mail.ReadWrite",
    "Mail.Send",
    "Files.ReadWrite.All",
    "Directory.ReadWrite.All",
    "User.ReadWrite.All",
    "Sites.ReadWrite.All",
    "MailboxSettings.ReadWrite",
]

WRITE_MARKERS = ["Write"]


def _normalize(scopes: Union[Iterable[str], str, None]) -> set:
    if not scopes:
        return set()
    if isinstance(scopes, str):
        scopes = scopes.split()
    try:
        return {str(s).strip() for s in scopes if s is not None and str(s).strip()}
    except TypeError:
        return set()


def _matches(scope_set: set, patterns: Iterable[str]) -> bool:
    return any(pattern in scope for scope in scope_set for pattern in patterns)


def classify_scopes(scopes: Union[Iterable[str], str, None]) -> RiskTier:
    """Classify a set of OAuth scopes into a risk tier.

    Critical patterns are checked before high patterns, which are checked
    before generic write access. Input order does not matter and the
    function never raises; empty or unusable input is Low.

    Args:
        scopes: Scope strings, or a single space separated scope string

    Returns:
        Highest matching RiskTier
    """
    scope_set = _normalize(scopes)

    if _matches(scope_set, CRITICAL_SCOPES):
        return RiskTier.CRITICAL
    if _matches(scope_set, HIGH_RISK_SCOPES):
        return RiskTier.HIGH
    if _matches(scope_set, WRITE_MARKERS):
        return RiskTier.MEDIUM
    return RiskTier.LOW


def highest_tier(tiers: Iterable[RiskTier]) -> Optional[RiskTier]:
    """Return the highest tier in ``tiers`` or None when empty."""
    result = None
    for tier in tiers:
        if result is None or tier.rank > result.rank:
            result = tier
    return result
