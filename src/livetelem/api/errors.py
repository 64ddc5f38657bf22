"""Exception hierarchy for livetelem.

Transport faults on the live stream are never raised to callers; they are
handled by the connection manager's backoff loop.  The exceptions below
cover the faults that *are* surfaced: missing or rejected credentials,
misbehaving REST collaborators, and configuration problems.
"""

from __future__ import annotations


class LiveTelemError(Exception):
    """Base class for all livetelem errors."""


class ConfigError(LiveTelemError):
    """Required configuration (URLs, credentials) is missing or invalid."""


class ApiError(LiveTelemError):
    """A REST collaborator request failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(ApiError):
    """The bearer token is missing or was rejected (HTTP 401/403)."""


class CollaboratorError(ApiError):
    """Non-success status, non-JSON content type, or an undecodable body.

    *body* holds at most the first 200 characters of the response text.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.body = body
