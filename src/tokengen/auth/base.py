"""Abstract base class for identity provider clients."""

from abc import ABC, abstractmethod
from typing import Optional

from ..models.token import DeviceCodeSession, PollOutcome, TokenResult


class IdentityProviderClient(ABC):
    """Network exchanges with the identity provider's token endpoints."""

    @abstractmethod
    def client_credentials(
        self,
        tenant: str,
        authority: str,
        client_id: str,
        secret: Optional[str],
        resource: str,
    ) -> TokenResult:
        """
        Acquire an app-only token with the client credentials grant.

        Returns:
            TokenResult without refresh token

        Raises:
            CredentialRejected: If the secret or client is rejected
            ProviderUnavailable: On network or transient provider failures
        """

    @abstractmethod
    def device_code_start(
        self,
        tenant: str,
        authority: str,
        client_id: str,
        scope: str,
    ) -> DeviceCodeSession:
        """
        Start a device code authorization.

        Raises:
            ProviderUnavailable: If the provider cannot be reached
            DeviceFlowExpired: If the provider refuses to issue a code
        """

    @abstractmethod
    def device_code_poll(self, session: DeviceCodeSession) -> PollOutcome:
        """
        Poll the token endpoint once. Must not wait between attempts.

        Raises:
            ProviderUnavailable: On network failures
        """

    @abstractmethod
    def refresh(
        self,
        tenant: str,
        authority: str,
        client_id: str,
        refresh_token: str,
        scope: str,
    ) -> TokenResult:
        """
        Redeem a refresh token.

        Raises:
            RefreshTokenInvalid: If the refresh token is rejected or expired
            ProviderUnavailable: On network or transient provider failures
        """
