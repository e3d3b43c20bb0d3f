"""Custom exceptions for tokengen."""


class TokenGenError(Exception):
    """Base exception for token acquisition errors."""

    exit_code = 1


class ConfigError(TokenGenError):
    """Raised when a profile cannot be resolved into a usable request."""

    exit_code = 2


class ProviderUnavailable(TokenGenError):
    """Raised on transient network or identity provider failures."""

    exit_code = 3


class CredentialRejected(TokenGenError):
    """Raised when the provider rejects the client secret or client."""

    exit_code = 4


class RefreshTokenInvalid(TokenGenError):
    """Raised when a cached refresh token is rejected."""

    exit_code = 5


class DeviceFlowExpired(TokenGenError):
    """Raised when the device code expires before the user signs in."""

    exit_code = 6


class DeviceFlowCancelled(TokenGenError):
    """Raised when the user declines or interrupts the device code flow."""

    exit_code = 7


class TokenTypeUnavailable(TokenGenError):
    """Raised when none of the requested token kinds is available."""

    exit_code = 8


class TokenCacheError(TokenGenError):
    """Raised when token cache storage cannot be initialized."""
