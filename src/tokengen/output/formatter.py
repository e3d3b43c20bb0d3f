"""Render the chosen token for standard output."""

from enum import Enum


class OutputFormat(str, Enum):
    """Supported output formats."""

    HEADER = "header"
    RAW = "raw"

    @classmethod
    def parse(cls, value: str) -> "OutputFormat":
        """Accept any non-empty prefix, so `h` and `r` work."""
        value = value.strip().lower()
        for member in cls:
            if value and member.value.startswith(value):
                return member
        raise ValueError(f"Unknown format '{value}', expected 'header' or 'raw'")


def format_token(token: str, fmt: OutputFormat = OutputFormat.HEADER) -> str:
    """
    Format a bearer token.

    Args:
        token: Opaque token string
        fmt: RAW for the token itself, HEADER for an Authorization header line

    Returns:
        Output string without trailing newline
    """
    if fmt == OutputFormat.RAW:
        return token
    return f"Authorization: Bearer {token}"
