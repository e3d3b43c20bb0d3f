"""Token, cache record and device code session models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..utils.date_utils import ensure_utc
from .request import TokenKind


class TokenResult(BaseModel):
    """Tokens returned by one successful provider exchange.

    Expiry timestamps are absolute; the identity provider client converts
    relative ``expires_in`` values when it receives the response.
    """

    id_token: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    id_token_expires_at: Optional[datetime] = None
    access_token_expires_at: Optional[datetime] = None
    scope: Optional[str] = None

    model_config = {"frozen": True}


class TokenRecord(BaseModel):
    """A cached acquisition result."""

    id_token: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None  # User only
    id_token_expires_at: Optional[datetime] = None
    access_token_expires_at: Optional[datetime] = None
    acquired_at: datetime

    model_config = {"frozen": True}

    @field_validator(
        "id_token_expires_at", "access_token_expires_at", "acquired_at", mode="after"
    )
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Hand-edited cache files may carry naive timestamps
        return ensure_utc(value) if value is not None else None

    @classmethod
    def from_result(
        cls,
        result: TokenResult,
        acquired_at: datetime,
        previous: Optional["TokenRecord"] = None,
        keep_refresh_token: bool = True,
    ) -> "TokenRecord":
        """
        Build a record from a provider result.

        Args:
            result: Fresh provider result
            acquired_at: Acquisition timestamp
            previous: Record being replaced, used to carry forward a
                refresh token the provider did not rotate
            keep_refresh_token: False for App profiles, which never cache one
        """
        refresh_token = None
        if keep_refresh_token:
            refresh_token = result.refresh_token or (
                previous.refresh_token if previous else None
            )
        return cls(
            id_token=result.id_token,
            access_token=result.access_token,
            refresh_token=refresh_token,
            id_token_expires_at=result.id_token_expires_at,
            access_token_expires_at=result.access_token_expires_at,
            acquired_at=acquired_at,
        )

    def token(self, kind: TokenKind) -> Optional[str]:
        value = self.id_token if kind == TokenKind.ID else self.access_token
        return value or None

    def expires_at(self, kind: TokenKind) -> Optional[datetime]:
        if kind == TokenKind.ID:
            return self.id_token_expires_at
        return self.access_token_expires_at


class DeviceCodeSession(BaseModel):
    """An in-flight device code authorization. Never persisted."""

    device_code: str
    user_code: str
    verification_uri: str
    interval: int = 5
    expires_at: datetime
    message: Optional[str] = None
    # Opaque provider state needed to poll (the MSAL flow dict)
    flow: dict[str, Any] = Field(default_factory=dict, repr=False)


class PollStatus(str, Enum):
    """Result classes of a single device code poll."""

    COMPLETED = "completed"
    PENDING = "authorization_pending"
    SLOW_DOWN = "slow_down"
    EXPIRED = "expired_token"
    DENIED = "access_denied"
    ERROR = "error"


class PollOutcome(BaseModel):
    """Outcome of one poll of the token endpoint."""

    status: PollStatus
    result: Optional[TokenResult] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    model_config = {"frozen": True}


class TokenSource(str, Enum):
    """Where the returned token came from."""

    CACHE = "cache"
    REFRESH = "refresh"
    CLIENT_CREDENTIALS = "client_credentials"
    DEVICE_CODE = "device_code"


class AcquiredToken(BaseModel):
    """Final token chosen for output."""

    value: str = Field(repr=False)
    kind: TokenKind
    source: TokenSource
    expires_at: Optional[datetime] = None

    model_config = {"frozen": True}
