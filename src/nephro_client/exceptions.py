"""Exception hierarchy for nephro-client."""

from __future__ import annotations

from typing import Any


class NephroError(Exception):
    """Base exception for all nephro-client errors."""


class NetworkError(NephroError):
    """Transport failure: no HTTP response was received."""


class RemoteError(NephroError):
    """The API answered with a 4xx/5xx status (other than a resolvable 401)."""

    def __init__(self, status: int, body: Any = None, message: str = "") -> None:
        self.status = status
        self.body = body
        self.message = message or f"HTTP {status}"
        super().__init__(self.message)


class AuthenticationExpired(NephroError):
    """A 401 that could not be resolved by refreshing the access token.

    The session has already been cleared when this is raised.
    """


class RefreshFailed(NephroError):
    """Token refresh was rejected or could not be performed.

    Raised by ``SessionManager.refresh`` and handled by the gateway only.
    """


class LoginFailed(NephroError):
    """Login succeeded at the HTTP level but no access token was returned."""


class NotLoggedIn(NephroError):
    """An operation on the current user was requested without a user id."""


class PersistenceError(NephroError):
    """Raised when a persistence backend operation fails."""


class InvalidPayload(NephroError, ValueError):
    """A field value could not be converted before sending it upstream."""
