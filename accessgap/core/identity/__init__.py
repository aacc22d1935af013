"""Identity provider client, credentials and application identity cache."""

from accessgap.core.identity.cache import AppIdentityCache
from accessgap.core.identity.client import IdentityClient, create_identity_client_from_config
from accessgap.core.identity.credentials import (
    AuthenticationError,
    ClientSecretCredential,
    StaticTokenCredential,
    create_credential_from_config,
)

__all__ = [
    "AppIdentityCache",
    "AuthenticationError",
    "ClientSecretCredential",
    "IdentityClient",
    "StaticTokenCredential",
    "create_credential_from_config",
    "create_identity_client_from_config",
]
