"""Merge command line values, profile file and defaults into one request."""

import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from ..config import (
    DEFAULT_AUTHORITY,
    DEFAULT_TENANT,
    DEFAULT_TOKEN_TYPE,
    DEFAULT_USER_SCOPE,
    ProfileConfig,
    ProfilesConfig,
)
from ..models.request import AcquisitionRequest, ProfileType, TokenTypePreference
from ..utils.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileOverrides:
    """Values given explicitly on the command line. None means not given."""

    profile_type: Optional[ProfileType] = None
    client_id: Optional[str] = None
    secret: Optional[str] = None
    tenant: Optional[str] = None
    authority: Optional[str] = None
    resource: Optional[str] = None
    scope: Optional[str] = None
    token_type: Optional[TokenTypePreference] = None


def _first(*values):
    """First value that is neither None nor an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


class ProfileResolver:
    """Resolves a profile name plus overrides into an AcquisitionRequest."""

    def __init__(self, config: ProfilesConfig):
        self.config = config

    def resolve(
        self,
        profile_name: Optional[str] = None,
        overrides: Optional[ProfileOverrides] = None,
    ) -> AcquisitionRequest:
        """
        Build the request for one invocation.

        Per field: explicit value > profile value > global default > built-in.

        Args:
            profile_name: Profile to use (None for the configured default)
            overrides: Command line values

        Returns:
            Immutable AcquisitionRequest

        Raises:
            ConfigError: If the profile is unknown or a required field is missing
        """
        overrides = overrides or ProfileOverrides()
        defaults = self.config.defaults

        name = _first(profile_name, self.config.default_profile)
        profile = self._lookup(name, explicit=profile_name is not None)
        if profile is None:
            name = None
            profile = ProfileConfig()

        secret = _first(overrides.secret, profile.secret, defaults.secret)
        profile_type = _first(overrides.profile_type, profile.type)
        if profile_type is None:
            profile_type = ProfileType.APP if secret else ProfileType.USER
            logger.debug(f"Profile type not set, inferred {profile_type.value}")

        client_id = _first(overrides.client_id, profile.client_id, defaults.client_id)
        tenant = _first(overrides.tenant, profile.tenant, defaults.tenant, DEFAULT_TENANT)
        authority = _first(
            overrides.authority, profile.authority, defaults.authority, DEFAULT_AUTHORITY
        )
        token_type = _first(
            overrides.token_type, profile.token_type, defaults.token_type, DEFAULT_TOKEN_TYPE
        )

        label = f"profile '{name}'" if name else "ad-hoc profile"
        if not client_id:
            raise ConfigError(f"No client id configured for {label}")

        if profile_type == ProfileType.APP:
            resource = _first(overrides.resource, profile.resource)
            if not resource:
                raise ConfigError(f"No resource configured for App {label}")
            fields = {"secret": secret, "resource": resource}
        else:
            scope = _first(overrides.scope, profile.scope, defaults.scope, DEFAULT_USER_SCOPE)
            fields = {"scope": scope}

        try:
            request = AcquisitionRequest(
                profile_name=name,
                profile_type=profile_type,
                authority=authority.rstrip("/"),
                tenant=tenant,
                client_id=client_id,
                token_type=token_type,
                **fields,
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid {label}: {e.errors()[0]['msg']}") from e

        logger.info(
            f"Resolved {label}: type={request.profile_type.value}, "
            f"tenant={request.tenant}, token_type={request.token_type.value}"
        )
        return request

    def _lookup(self, name: Optional[str], explicit: bool) -> Optional[ProfileConfig]:
        if name is None:
            return None
        profile = self.config.profiles.get(name)
        if profile is not None:
            return profile
        if explicit:
            raise ConfigError(f"Unknown profile '{name}'")
        # A stale default_profile is not fatal; fall back to ad-hoc resolution
        logger.warning(f"Default profile '{name}' not found in config")
        return None
