"""Identity provider (Microsoft Graph style) API client."""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests
import structlog

from accessgap.core.exceptions import IdentityAPIError
from accessgap.core.identity.cache import AppIdentityCache
from accessgap.core.identity.credentials import AuthenticationError
from accessgap.core.models import (
    AppIdentity,
    Grant,
    LicenseDetail,
    RoleAssignment,
    ServicePlan,
    Subject,
)

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_TIMEOUT = 15.0

USER_FIELDS = "id,displayName,mail,userPrincipalName,accountEnabled"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class IdentityClient:
    """Capability wrapper over the identity provider's REST API.

    Every call is bounded by ``timeout``. Failures other than not-found are
    raised as IdentityAPIError carrying the operation name, HTTP status and
    provider error code. Deletes treat not-found as success.
    """

    def __init__(
        self,
        credential: Any,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        cache: Optional[AppIdentityCache] = None,
    ):
        """Initialize the client.

        Args:
            credential: Object exposing ``get_token() -> str``
            base_url: API root
            timeout: Per-request timeout in seconds
            session: Optional requests session (injected in tests)
            cache: Application identity cache shared across clients
        """
        self.credential = credential
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.cache = cache if cache is not None else AppIdentityCache()

        logger.info("identity_client_initialized", base_url=self.base_url, timeout=timeout)

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = path if path.startswith("http") else f"{self.base_url}{path}"

        try:
            token = self.credential.get_token()
        except AuthenticationError as e:
            raise IdentityAPIError(operation, str(e), status_code=401, provider_code="InvalidAuthenticationToken")

        try:
            response = self.session.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                params=params,
                json=json_body,
                timeout=self.timeout,
            )
        except requests.Timeout:
            raise IdentityAPIError(operation, f"Request timed out after {self.timeout}s")
        except requests.RequestException as e:
            raise IdentityAPIError(operation, f"Request failed: {e}")

        if response.status_code >= 400:
            code, message = None, ""
            try:
                error = response.json().get("error", {})
                code = error.get("code")
                message = error.get("message") or message
            except (ValueError, AttributeError):
                pass
            raise IdentityAPIError(operation, message or "Request failed", response.status_code, code)

        if response.status_code == 204:
            return {}

        try:
            return response.json() or {}
        except ValueError:
            return {}

    def _collect_pages(self, operation: str, path: str, params: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        """Follow ``@odata.nextLink`` continuation links until exhausted."""
        items: List[Dict[str, Any]] = []
        data = self._request(operation, "GET", path, params=params)
        items.extend(data.get("value", []))
        pages = 1

        while data.get("@odata.nextLink"):
            data = self._request(operation, "GET", data["@odata.nextLink"])
            items.extend(data.get("value", []))
            pages += 1

        logger.debug("pages_collected", operation=operation, pages=pages, items=len(items))
        return items

    def get_subject(self, email_or_id: str) -> Optional[Subject]:
        """Look up a subject by email, UPN or object id.

        Returns:
            Subject, or None if the provider does not know it
        """
        try:
            data = self._request(
                "get_subject",
                "GET",
                f"/users/{quote(email_or_id)}",
                params={"$select": USER_FIELDS},
            )
        except IdentityAPIError as e:
            if e.is_not_found:
                return None
            raise

        return Subject(
            id=data["id"],
            email=data.get("mail") or data.get("userPrincipalName") or email_or_id,
            display_name=data.get("displayName") or "",
            enabled=bool(data.get("accountEnabled", True)),
            source="identity",
        )

    def list_oauth_grants(self, subject_id: str) -> List[Grant]:
        raw = self._collect_pages("list_oauth_grants", f"/users/{quote(subject_id)}/oauth2PermissionGrants")
        return [
            Grant(
                id=item["id"],
                client_id=item.get("clientId", ""),
                resource_id=item.get("resourceId", ""),
                consent_type=item.get("consentType", ""),
                principal_id=item.get("principalId"),
                scope=item.get("scope") or "",
            )
            for item in raw
        ]

    def list_role_assignments(self, subject_id: str) -> List[RoleAssignment]:
        raw = self._collect_pages("list_role_assignments", f"/users/{quote(subject_id)}/appRoleAssignments")
        return [
            RoleAssignment(
                id=item["id"],
                app_role_id=item.get("appRoleId", ""),
                resource_id=item.get("resourceId", ""),
                resource_display_name=item.get("resourceDisplayName") or "",
                principal_id=item.get("principalId"),
                created_at=_parse_datetime(item.get("createdDateTime")),
            )
            for item in raw
        ]

    def list_license_entitlements(self, email: str) -> List[LicenseDetail]:
        raw = self._collect_pages("list_license_entitlements", f"/users/{quote(email)}/licenseDetails")
        return [
            LicenseDetail(
                sku_id=item.get("skuId", ""),
                sku_part_number=item.get("skuPartNumber", ""),
                service_plans=[
                    ServicePlan(
                        name=plan.get("servicePlanName", ""),
                        provisioning_status=plan.get("provisioningStatus", ""),
                    )
                    for plan in item.get("servicePlans", [])
                ],
            )
            for item in raw
        ]

    def delete_grant(self, grant_id: str) -> bool:
        """Delete an OAuth grant. An already-absent grant counts as deleted."""
        try:
            self._request("delete_grant", "DELETE", f"/oauth2PermissionGrants/{quote(grant_id)}")
        except IdentityAPIError as e:
            if e.is_not_found:
                logger.info("grant_already_deleted", grant_id=grant_id)
                return True
            raise
        logger.info("grant_deleted", grant_id=grant_id)
        return True

    def update_grant_scopes(self, grant_id: str, scopes: List[str]) -> bool:
        self._request(
            "update_grant_scopes",
            "PATCH",
            f"/oauth2PermissionGrants/{quote(grant_id)}",
            json_body={"scope": " ".join(scopes)},
        )
        logger.info("grant_scopes_updated", grant_id=grant_id, scopes=len(scopes))
        return True

    def delete_role_assignment(self, subject_id: str, assignment_id: str) -> bool:
        """Delete an app-role assignment. An already-absent one counts as deleted."""
        try:
            self._request(
                "delete_role_assignment",
                "DELETE",
                f"/users/{quote(subject_id)}/appRoleAssignments/{quote(assignment_id)}",
            )
        except IdentityAPIError as e:
            if e.is_not_found:
                logger.info("role_assignment_already_deleted", assignment_id=assignment_id)
                return True
            raise
        logger.info("role_assignment_deleted", assignment_id=assignment_id)
        return True

    def revoke_sessions(self, subject_id: str) -> bool:
        data = self._request("revoke_sessions", "POST", f"/users/{quote(subject_id)}/revokeSignInSessions")
        revoked = bool(data.get("value", True))
        logger.info("sessions_revoked", subject_id=subject_id, revoked=revoked)
        return revoked

    def resolve_application(self, client_or_app_id: str) -> Optional[AppIdentity]:
        """Resolve a client application by app id or service principal object id.

        Results, including confirmed not-found, are memoized in the cache.
        Errors are raised and never cached.
        """
        found, identity = self.cache.lookup(client_or_app_id)
        if found:
            return identity

        data = self._request(
            "resolve_application",
            "GET",
            "/servicePrincipals",
            params={"$filter": f"appId eq '{client_or_app_id}'"},
        )
        matches = data.get("value", [])
        if matches:
            identity = self._to_app_identity(matches[0])
        else:
            try:
                identity = self._to_app_identity(
                    self._request("resolve_application", "GET", f"/servicePrincipals/{quote(client_or_app_id)}")
                )
            except IdentityAPIError as e:
                # 400 means the id is not a valid object id
                if not (e.is_not_found or e.status_code == 400):
                    raise
                identity = None

        self.cache.set(client_or_app_id, identity)
        return identity

    def list_applications(self, ids: Iterable[str]) -> Dict[str, Optional[AppIdentity]]:
        """Resolve a batch of application ids.

        An individual lookup failure yields None for that id only.
        """
        resolved: Dict[str, Optional[AppIdentity]] = {}
        for app_id in sorted({i for i in ids if i}):
            try:
                resolved[app_id] = self.resolve_application(app_id)
            except IdentityAPIError as e:
                logger.warning("application_resolution_failed", app_id=app_id, error=str(e))
                resolved[app_id] = None
        return resolved

    @staticmethod
    def _to_app_identity(data: Dict[str, Any]) -> AppIdentity:
        return AppIdentity(
            id=data.get("id", ""),
            app_id=data.get("appId", ""),
            display_name=data.get("displayName") or data.get("appId") or "Unknown",
            publisher=data.get("publisherName"),
        )


def create_identity_client_from_config(
    config: Dict[str, Any],
    cache: Optional[AppIdentityCache] = None,
) -> Optional[IdentityClient]:
    """Create an IdentityClient from configuration.

    Returns:
        IdentityClient, or None when no credentials are configured
    """
    from accessgap.core.identity.credentials import create_credential_from_config

    credential = create_credential_from_config(config)
    if credential is None:
        return None

    idp = config.get("identity_provider") or {}
    return IdentityClient(
        credential=credential,
        base_url=idp.get("base_url", DEFAULT_BASE_URL),
        timeout=float(idp.get("timeout", DEFAULT_TIMEOUT)),
        cache=cache,
    )
