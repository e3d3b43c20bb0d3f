"""Acquisition request and cache key models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, model_validator


class ProfileType(str, Enum):
    """How a profile acquires its tokens."""

    APP = "App"  # client credentials
    USER = "User"  # device code + refresh

    @classmethod
    def parse(cls, value: str) -> "ProfileType":
        """Case-insensitive lookup, so `app` and `APP` both work."""
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise ValueError(f"Unknown profile type '{value}', expected App or User")


class TokenKind(str, Enum):
    """Token kinds a provider response may carry."""

    ID = "id_token"
    ACCESS = "access_token"


class TokenTypePreference(str, Enum):
    """Ordered fallback chain over id_token and access_token."""

    ID = "i"
    ACCESS = "a"
    ID_OR_ACCESS = "ia"
    ACCESS_OR_ID = "ai"

    @property
    def chain(self) -> tuple[TokenKind, ...]:
        return _CHAINS[self]


_CHAINS = {
    TokenTypePreference.ID: (TokenKind.ID,),
    TokenTypePreference.ACCESS: (TokenKind.ACCESS,),
    TokenTypePreference.ID_OR_ACCESS: (TokenKind.ID, TokenKind.ACCESS),
    TokenTypePreference.ACCESS_OR_ID: (TokenKind.ACCESS, TokenKind.ID),
}


class CacheKey(BaseModel):
    """Identity of a cache entry, built from the effective request fields."""

    profile_type: ProfileType
    tenant: str
    client_id: str
    target: str  # resource for App, normalized scope for User

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return "\t".join(
            [self.profile_type.value, self.tenant, self.client_id, self.target]
        )


def normalize_scope(scope: Optional[str]) -> str:
    """Scope as a sorted, de-duplicated, space separated word set."""
    return " ".join(sorted(set((scope or "").split())))


def normalize_resource(resource: Optional[str]) -> str:
    return (resource or "").strip().rstrip("/")


class AcquisitionRequest(BaseModel):
    """Fully resolved parameters for one token acquisition."""

    profile_name: Optional[str] = None
    profile_type: ProfileType
    authority: str
    tenant: str
    client_id: str
    secret: Optional[str] = None  # App only
    resource: Optional[str] = None  # App only
    scope: Optional[str] = None  # User only
    token_type: TokenTypePreference = TokenTypePreference.ID_OR_ACCESS

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_type_fields(self) -> "AcquisitionRequest":
        if self.profile_type == ProfileType.APP and self.scope:
            raise ValueError("App requests do not carry a scope")
        if self.profile_type == ProfileType.USER and (self.secret or self.resource):
            raise ValueError("User requests do not carry a secret or resource")
        return self

    @property
    def cache_key(self) -> CacheKey:
        if self.profile_type == ProfileType.APP:
            target = normalize_resource(self.resource)
        else:
            target = normalize_scope(self.scope)
        return CacheKey(
            profile_type=self.profile_type,
            tenant=self.tenant.strip().lower(),
            client_id=self.client_id.strip(),
            target=target,
        )

    @property
    def display_name(self) -> str:
        return self.profile_name or "<ad-hoc>"
