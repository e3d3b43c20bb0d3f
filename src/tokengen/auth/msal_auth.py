"""MSAL-based identity provider client for Azure AD."""

import logging
from contextlib import contextmanager
from typing import Any, Optional

import msal
import requests

from ..models.request import normalize_resource
from ..models.token import DeviceCodeSession, PollOutcome, PollStatus, TokenResult
from ..utils.clock import Clock, SystemClock
from ..utils.date_utils import expires_after, from_timestamp
from ..utils.exceptions import (
    ConfigError,
    CredentialRejected,
    DeviceFlowExpired,
    ProviderUnavailable,
    RefreshTokenInvalid,
)
from .base import IdentityProviderClient

logger = logging.getLogger(__name__)

# MSAL always requests these and refuses them in the scope list
RESERVED_SCOPES = frozenset({"openid", "profile", "offline_access"})

TRANSIENT_ERRORS = frozenset({"temporarily_unavailable", "server_error"})

_POLL_STATUS = {
    "authorization_pending": PollStatus.PENDING,
    "slow_down": PollStatus.SLOW_DOWN,
    "expired_token": PollStatus.EXPIRED,
    "code_expired": PollStatus.EXPIRED,
    "access_denied": PollStatus.DENIED,
    "authorization_declined": PollStatus.DENIED,
}


def msal_scopes(scope: Optional[str]) -> list[str]:
    """Scope string as the list MSAL accepts (reserved scopes removed)."""
    return [s for s in (scope or "").split() if s not in RESERVED_SCOPES]


def resource_scope(resource: str) -> str:
    """v2 `.default` scope for a v1-style resource URI."""
    resource = normalize_resource(resource)
    if resource.endswith("/.default"):
        return resource
    return f"{resource}/.default"


def describe_error(result: dict[str, Any]) -> str:
    """One-line summary of an MSAL error result."""
    error = result.get("error", "unknown_error")
    description = (result.get("error_description") or "").strip()
    if description:
        return f"{error}: {description.splitlines()[0]}"
    return error


@contextmanager
def _provider_errors(action: str):
    """Translate transport and discovery failures raised by MSAL."""
    try:
        yield
    except requests.exceptions.RequestException as e:
        raise ProviderUnavailable(f"{action} failed: {e}") from e
    except ValueError as e:
        # MSAL raises ValueError when the authority/tenant cannot be discovered
        raise ConfigError(f"{action} failed: {e}") from e


class MsalIdentityProviderClient(IdentityProviderClient):
    """Identity provider client backed by MSAL applications.

    Each application gets a private in-memory ``msal.TokenCache``; persistent
    caching is done by ``TokenCache`` so MSAL never serves stale tokens here.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        timeout: Optional[float] = 30.0,
    ):
        """
        Initialize the client.

        Args:
            clock: Time source used to turn `expires_in` into timestamps
            timeout: HTTP timeout in seconds for every provider call
        """
        self.clock = clock or SystemClock()
        self.timeout = timeout
        self._public_apps: dict[tuple[str, str], msal.PublicClientApplication] = {}
        self._sessions: dict[str, msal.PublicClientApplication] = {}

    @staticmethod
    def _authority_url(authority: str, tenant: str) -> str:
        return f"{authority.rstrip('/')}/{tenant}"

    def _public_app(self, client_id: str, authority_url: str) -> msal.PublicClientApplication:
        key = (client_id, authority_url)
        if key not in self._public_apps:
            logger.debug(f"Creating public client application for {authority_url}")
            self._public_apps[key] = msal.PublicClientApplication(
                client_id=client_id,
                authority=authority_url,
                token_cache=msal.TokenCache(),
                timeout=self.timeout,
            )
        return self._public_apps[key]

    def _token_result(self, result: dict[str, Any]) -> TokenResult:
        now = self.clock.now()
        access_expires = expires_after(now, result.get("expires_in"))
        claims = result.get("id_token_claims") or {}
        id_expires = from_timestamp(claims.get("exp")) or access_expires
        return TokenResult(
            id_token=result.get("id_token") or None,
            access_token=result.get("access_token") or None,
            refresh_token=result.get("refresh_token") or None,
            id_token_expires_at=id_expires if result.get("id_token") else None,
            access_token_expires_at=access_expires if result.get("access_token") else None,
            scope=result.get("scope"),
        )

    def client_credentials(
        self,
        tenant: str,
        authority: str,
        client_id: str,
        secret: Optional[str],
        resource: str,
    ) -> TokenResult:
        """Acquire token using client credentials flow (app-only)."""
        if not secret:
            raise CredentialRejected("No client secret configured for App profile")

        authority_url = self._authority_url(authority, tenant)
        with _provider_errors("Client credentials request"):
            app = msal.ConfidentialClientApplication(
                client_id=client_id,
                client_credential=secret,
                authority=authority_url,
                token_cache=msal.TokenCache(),
                timeout=self.timeout,
            )
            result = app.acquire_token_for_client(scopes=[resource_scope(resource)])

        if "access_token" in result:
            logger.debug("Token acquired via client credentials flow")
            return self._token_result(result)

        message = f"Client credentials authentication failed: {describe_error(result)}"
        if result.get("error") in TRANSIENT_ERRORS:
            raise ProviderUnavailable(message)
        raise CredentialRejected(message)

    def device_code_start(
        self,
        tenant: str,
        authority: str,
        client_id: str,
        scope: str,
    ) -> DeviceCodeSession:
        """Initiate the device code flow (delegated)."""
        authority_url = self._authority_url(authority, tenant)
        with _provider_errors("Device code request"):
            app = self._public_app(client_id, authority_url)
            flow = app.initiate_device_flow(scopes=msal_scopes(scope))

        if "user_code" not in flow:
            message = f"Failed to create device flow: {describe_error(flow)}"
            if flow.get("error") in TRANSIENT_ERRORS:
                raise ProviderUnavailable(message)
            raise DeviceFlowExpired(message)

        self._sessions[flow["device_code"]] = app
        logger.info("Device code flow started")
        return DeviceCodeSession(
            device_code=flow["device_code"],
            user_code=flow["user_code"],
            verification_uri=flow.get("verification_uri") or flow.get("verification_url"),
            interval=int(flow.get("interval") or 5),
            expires_at=expires_after(self.clock.now(), flow.get("expires_in") or 900),
            message=flow.get("message"),
            flow=flow,
        )

    def device_code_poll(self, session: DeviceCodeSession) -> PollOutcome:
        """Poll once; the controller owns the wait between polls."""
        app = self._sessions.get(session.device_code)
        if app is None:
            raise ProviderUnavailable("Device code session was not started by this client")

        with _provider_errors("Device code poll"):
            # exit_condition stops MSAL's own polling loop after one request
            result = app.acquire_token_by_device_flow(
                session.flow, exit_condition=lambda flow: True
            )

        if "access_token" in result or "id_token" in result:
            self._sessions.pop(session.device_code, None)
            return PollOutcome(status=PollStatus.COMPLETED, result=self._token_result(result))

        error = result.get("error")
        status = _POLL_STATUS.get(error, PollStatus.ERROR)
        if status not in (PollStatus.PENDING, PollStatus.SLOW_DOWN):
            self._sessions.pop(session.device_code, None)
        return PollOutcome(
            status=status,
            error=error,
            error_description=result.get("error_description"),
        )

    def refresh(
        self,
        tenant: str,
        authority: str,
        client_id: str,
        refresh_token: str,
        scope: str,
    ) -> TokenResult:
        """Redeem a refresh token for new tokens."""
        authority_url = self._authority_url(authority, tenant)
        with _provider_errors("Token refresh"):
            app = self._public_app(client_id, authority_url)
            result = app.acquire_token_by_refresh_token(
                refresh_token, scopes=msal_scopes(scope)
            )

        if "access_token" in result or "id_token" in result:
            logger.debug("Token refreshed")
            return self._token_result(result)

        message = f"Token refresh failed: {describe_error(result)}"
        if result.get("error") in TRANSIENT_ERRORS:
            raise ProviderUnavailable(message)
        raise RefreshTokenInvalid(message)
