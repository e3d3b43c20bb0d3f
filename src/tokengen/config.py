"""Configuration management for tokengen."""

import logging
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from platformdirs import user_cache_dir, user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.request import ProfileType, TokenTypePreference
from .utils.exceptions import ConfigError

load_dotenv()

APP_NAME = "tokengen"

DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
DEFAULT_TENANT = "common"
DEFAULT_USER_SCOPE = "openid profile offline_access"
DEFAULT_TOKEN_TYPE = TokenTypePreference.ID_OR_ACCESS


class AppSettings(BaseSettings):
    """Application settings, read from TOKENGEN_* variables and .env."""

    config_path: Path = Field(
        default=Path(user_config_dir(APP_NAME)) / "config.yaml",
        validation_alias="TOKENGEN_CONFIG_PATH",
    )

    # Token cache
    cache_path: Path = Field(
        default=Path(user_cache_dir(APP_NAME)) / "cache.json",
        validation_alias="TOKENGEN_CACHE_PATH",
    )
    cache_encrypted: bool = Field(
        default=False, validation_alias="TOKENGEN_CACHE_ENCRYPTED"
    )
    skew_margin_seconds: int = Field(
        default=60, ge=0, validation_alias="TOKENGEN_SKEW_MARGIN_SECONDS"
    )
    refresh_backoff_seconds: float = Field(
        default=1.0, ge=0, validation_alias="TOKENGEN_REFRESH_BACKOFF_SECONDS"
    )

    # Interactive side channels
    open_browser: bool = Field(default=True, validation_alias="TOKENGEN_OPEN_BROWSER")
    copy_to_clipboard: bool = Field(
        default=True, validation_alias="TOKENGEN_COPY_TO_CLIPBOARD"
    )
    use_system_truststore: bool = Field(
        default=True, validation_alias="TOKENGEN_USE_SYSTEM_TRUSTSTORE"
    )

    # Logging
    log_level: str = Field(default="WARNING", validation_alias="TOKENGEN_LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, validation_alias="TOKENGEN_LOG_FILE")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_parse_none_str="",  # Treat empty string as None
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level '{value}'")
        return level


class DefaultsConfig(BaseModel):
    """Global defaults applied to every profile."""

    client_id: Optional[str] = None
    secret: Optional[str] = None
    tenant: Optional[str] = None
    authority: Optional[str] = None
    scope: Optional[str] = None
    token_type: Optional[TokenTypePreference] = None

    model_config = {"extra": "forbid"}


class ProfileConfig(BaseModel):
    """A named profile from the profile file."""

    type: Optional[ProfileType] = None
    client_id: Optional[str] = None
    secret: Optional[str] = None
    tenant: Optional[str] = None
    authority: Optional[str] = None
    resource: Optional[str] = None
    scope: Optional[str] = None
    token_type: Optional[TokenTypePreference] = None

    model_config = {"extra": "forbid"}

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        if value is None or isinstance(value, ProfileType):
            return value
        return ProfileType.parse(value)


class ProfilesConfig(BaseModel):
    """Contents of the profile file."""

    default_profile: Optional[str] = None
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    profiles: dict[str, ProfileConfig] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}

    @classmethod
    def load(cls, config_path: Path) -> "ProfilesConfig":
        """
        Load the profile file.

        A missing file yields an empty configuration.

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        if not config_path.exists():
            return cls()

        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Unable to read config file '{config_path}': {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file '{config_path}' must contain a mapping")

        # Empty `profiles:` / `defaults:` sections parse as None
        data = {k: v for k, v in data.items() if v is not None}

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise ConfigError(
                f"Invalid config file '{config_path}': {location}: {first['msg']}"
            ) from e

    @property
    def has_profiles(self) -> bool:
        return len(self.profiles) > 0


CONFIG_TEMPLATE = """\
# tokengen profiles
#
# default_profile: my-user
#
# defaults:
#   tenant: contoso.onmicrosoft.com
#   client_id: 00000000-0000-0000-0000-000000000000
#   authority: https://login.microsoftonline.com
#   token_type: ia            # i, a, ia or ai
#
# profiles:
#   my-app:
#     type: App
#     secret: change-me
#     resource: https://graph.microsoft.com
#   my-user:
#     type: User
#     scope: openid profile offline_access User.Read
profiles: {}
"""


def load_settings() -> AppSettings:
    """
    Read application settings from the environment and .env.

    Raises:
        ConfigError: If a TOKENGEN_* value is invalid
    """
    try:
        return AppSettings()
    except ValidationError as e:
        first = e.errors()[0]
        name = ".".join(str(part) for part in first["loc"])
        raise ConfigError(f"Invalid setting {name}: {first['msg']}") from e
