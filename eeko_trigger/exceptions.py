"""Exceptions for the Eeko trigger plugin."""

from __future__ import annotations

from enum import Enum


class EekoTriggerError(Exception):
    """Base class for plugin errors."""


class CredentialValidationError(EekoTriggerError):
    """Raised when an API key does not have the expected format."""

    def __init__(self, message: str = "Invalid API key format") -> None:
        super().__init__(message)


class CredentialStoreError(EekoTriggerError):
    """Raised when the API key cannot be written to the host settings."""


class ServiceErrorKind(Enum):
    """Failure classes of a remote API call."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONNECTION = "connection"
    OTHER = "other"


class AutomationServiceError(EekoTriggerError):
    """A single remote API call failed.

    The message is always one of a small set of sanitized strings so it can be
    relayed to the property inspector as is.
    """

    def __init__(self, kind: ServiceErrorKind, status: int | None = None) -> None:
        self.kind = kind
        self.status = status
        super().__init__(self._describe(kind, status))

    @classmethod
    def from_status(cls, status: int) -> AutomationServiceError:
        """Build the error for a non-success HTTP status."""
        if status == 401:
            return cls(ServiceErrorKind.UNAUTHORIZED, status)
        if status == 403:
            return cls(ServiceErrorKind.FORBIDDEN, status)
        return cls(ServiceErrorKind.OTHER, status)

    @staticmethod
    def _describe(kind: ServiceErrorKind, status: int | None) -> str:
        if kind is ServiceErrorKind.UNAUTHORIZED:
            return "Invalid or expired API key"
        if kind is ServiceErrorKind.FORBIDDEN:
            return "API key does not have required permissions"
        if kind is ServiceErrorKind.CONNECTION:
            return "Connection error - check your internet connection"
        return f"API error: {status}"

    @property
    def message(self) -> str:
        """Sanitized, human readable description."""
        return str(self)
