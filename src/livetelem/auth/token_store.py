"""Keyring-backed bearer token persistence."""

from __future__ import annotations

import contextlib

import keyring
from keyring.errors import PasswordDeleteError

SERVICE_NAME = "livetelem"


class TokenStore:
    """Read / write the dashboard bearer token via the OS keyring."""

    def __init__(self, profile: str = "default") -> None:
        self._profile = profile

    def _key(self, name: str) -> str:
        return f"{self._profile}/{name}"

    @property
    def profile(self) -> str:
        return self._profile

    @property
    def access_token(self) -> str | None:
        """Return the stored access token, or *None*."""
        return keyring.get_password(SERVICE_NAME, self._key("access_token"))

    @property
    def has_token(self) -> bool:
        """Return *True* if an access token is stored."""
        return self.access_token is not None

    def save(self, access_token: str) -> None:
        keyring.set_password(SERVICE_NAME, self._key("access_token"), access_token)

    def clear(self) -> None:
        """Delete the stored token, ignoring a missing entry."""
        with contextlib.suppress(PasswordDeleteError):
            keyring.delete_password(SERVICE_NAME, self._key("access_token"))
