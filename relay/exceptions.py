"""Domain exception classes for the presence relay.

Recoverable errors derive from ``RelayError``; the hub catches them and
answers only the originating connection. ``RegistryInvariantError`` marks a
programming fault and is never caught by the hub.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for errors surfaced to a single connection."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RelayError):
    """Raised for an empty, oversized or malformed username, name, message or payload."""


class AuthenticationRequiredError(RelayError):
    """Raised when a connection that has not logged in sends a login-only event."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class TargetNotFoundError(RelayError):
    """Raised when a direct message targets a username with no active sessions."""

    def __init__(self, username: str) -> None:
        super().__init__(f"User {username} is not available")
        self.username = username


class TransportError(RelayError):
    """Raised when sending to a WebSocket fails (connection already gone)."""

    def __init__(self, connection_id: str | None, cause: BaseException) -> None:
        super().__init__(f"Send to connection {connection_id} failed: {cause}")
        self.connection_id = connection_id
        self.cause = cause


class RegistryInvariantError(RuntimeError):
    """Raised when the presence registry is found in an inconsistent state."""
