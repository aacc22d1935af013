"""Identity provider credential management."""

import time
from typing import Any, Dict, Optional

import requests
import structlog

from accessgap.core.exceptions import AccessGapError

logger = structlog.get_logger(__name__)

DEFAULT_SCOPE = "https://graph.microsoft.com/.default"
DEFAULT_AUTHORITY = "https://login.microsoftonline.com"


class AuthenticationError(AccessGapError):
    """Raised when a token cannot be obtained."""

    pass


class StaticTokenCredential:
    """A pre-authenticated bearer token supplied by the caller."""

    def __init__(self, access_token: str):
        if not access_token:
            raise AuthenticationError("access_token must not be empty")
        self._access_token = access_token

    def get_token(self) -> str:
        return self._access_token


class ClientSecretCredential:
    """OAuth2 client-credentials flow against the provider's token endpoint.

    Tokens are cached until shortly before they expire.
    """

    # Refresh this many seconds before the reported expiry
    EXPIRY_MARGIN = 60

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        authority: str = DEFAULT_AUTHORITY,
        scope: str = DEFAULT_SCOPE,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize credential.

        Args:
            tenant_id: Directory tenant identifier
            client_id: Application (client) identifier
            client_secret: Application secret
            authority: Token authority base URL
            scope: Requested scope
            timeout: Request timeout in seconds
            session: Optional requests session
        """
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.authority = authority.rstrip("/")
        self.scope = scope
        self.timeout = timeout
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

        logger.info("client_secret_credential_initialized", tenant_id=tenant_id, client_id=client_id)

    @property
    def token_url(self) -> str:
        return f"{self.authority}/{self.tenant_id}/oauth2/v2.0/token"

    def get_token(self) -> str:
        """Return a valid access token, requesting a new one when needed.

        Raises:
            AuthenticationError: If the token endpoint rejects the request
        """
        if self._token and time.time() < self._expires_at - self.EXPIRY_MARGIN:
            return self._token

        try:
            response = self.session.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": self.scope,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("token_request_failed", error=str(e))
            raise AuthenticationError(f"Token request failed: {e}")

        if response.status_code != 200:
            logger.error("token_request_rejected", status_code=response.status_code)
            raise AuthenticationError(
                f"Token endpoint returned {response.status_code}: {response.text[:200]}"
            )

        payload = response.json()
        self._token = payload["access_token"]
        self._expires_at = time.time() + int(payload.get("expires_in", 3600))
        logger.info("access_token_acquired", expires_in=payload.get("expires_in"))
        return self._token


def create_credential_from_config(config: Dict[str, Any]) -> Optional[Any]:
    """Create a credential from the ``identity_provider`` config section.

    Returns None when no credentials are configured, which puts discovery
    and remediation into their unconfigured mode.
    """
    idp = config.get("identity_provider") or {}

    if idp.get("access_token"):
        return StaticTokenCredential(idp["access_token"])

    if idp.get("tenant_id") and idp.get("client_id") and idp.get("client_secret"):
        return ClientSecretCredential(
            tenant_id=idp["tenant_id"],
            client_id=idp["client_id"],
            client_secret=idp["client_secret"],
            authority=idp.get("authority", DEFAULT_AUTHORITY),
            timeout=float(idp.get("timeout", 15)),
        )

    logger.info("identity_provider_not_configured")
    return None
