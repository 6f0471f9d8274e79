"""Custom exceptions for identmux."""

from typing import Any


class IdentmuxError(Exception):
    """Base exception for all identmux errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class ConfigError(IdentmuxError):
    """Raised when the identity config is missing, unreadable or invalid."""


class ExternalToolError(IdentmuxError):
    """Raised when ssh-keygen or git is unavailable or fails."""


class RemoteUpdateError(IdentmuxError):
    """Raised when a single remote URL cannot be updated."""
