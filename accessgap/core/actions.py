"""Closed set of remediation actions."""

from dataclasses import dataclass
from typing import Optional, Union

from accessgap.core.exceptions import InvalidActionError


@dataclass(frozen=True)
class FullBundle:
    """Revoke every grant and all sessions, then close all open findings."""

    name = "full_bundle"


@dataclass(frozen=True)
class RevokeToken:
    """Revoke OAuth grants, optionally only those for one client application."""

    client_id: Optional[str] = None
    name = "revoke_token"


@dataclass(frozen=True)
class SignOut:
    name = "sign_out"


@dataclass(frozen=True)
class RemoveAppRoles:
    """Remove app-role assignments (app-specific credential equivalent)."""

    name = "remove_app_roles"


RemediationAction = Union[FullBundle, RevokeToken, SignOut, RemoveAppRoles]

_ALIASES = {
    "full_bundle": FullBundle,
    "revoke_token": RevokeToken,
    "revoke_grants": RevokeToken,
    "sign_out": SignOut,
    "signout": SignOut,
    "remove_app_roles": RemoveAppRoles,
    "delete_asp": RemoveAppRoles,
}

ACTION_NAMES = ("full_bundle", "revoke_token", "sign_out", "remove_app_roles")


def parse_action(name: str, client_id: Optional[str] = None) -> RemediationAction:
    """Build a remediation action from its name.

    Args:
        name: Action name (``full_bundle``, ``revoke_token``, ``sign_out``,
            ``remove_app_roles``/``delete_asp``)
        client_id: Client application scope for ``revoke_token``

    Raises:
        InvalidActionError: If the name is not a known action
    """
    action_cls = _ALIASES.get((name or "").strip().lower())
    if action_cls is None:
        raise InvalidActionError(
            f"Unknown remediation action '{name}'. Valid actions: {', '.join(ACTION_NAMES)}"
        )
    if action_cls is RevokeToken:
        return RevokeToken(client_id=client_id)
    return action_cls()
