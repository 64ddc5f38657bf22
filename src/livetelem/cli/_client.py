"""Shared helpers for resolving settings, tokens and API clients."""

from __future__ import annotations

from typing import TYPE_CHECKING

from livetelem.api.client import LiveApiClient
from livetelem.api.errors import AuthError, ConfigError
from livetelem.api.telemetry import TelemetryAPI
from livetelem.auth.token_store import TokenStore
from livetelem.models.config import AppSettings

if TYPE_CHECKING:
    from livetelem.cli.main import AppContext


def resolve_token(app_ctx: AppContext, settings: AppSettings) -> str | None:
    """Return the bearer token: ``LIVETELEM_ACCESS_TOKEN`` first, then the keyring."""
    if settings.access_token:
        return settings.access_token
    return TokenStore(profile=app_ctx.profile).access_token


def require_token(app_ctx: AppContext, settings: AppSettings) -> str:
    token = resolve_token(app_ctx, settings)
    if not token:
        raise AuthError(
            "No access token found. Run 'livetelem auth set-token' or set LIVETELEM_ACCESS_TOKEN."
        )
    return token


def get_api(
    app_ctx: AppContext,
    settings: AppSettings | None = None,
) -> tuple[LiveApiClient, TelemetryAPI]:
    """Build a :class:`LiveApiClient` + :class:`TelemetryAPI` from settings / token store."""
    settings = settings or AppSettings()
    if not settings.api_url:
        raise ConfigError("No API URL configured. Set LIVETELEM_API_URL.")
    token = require_token(app_ctx, settings)
    client = LiveApiClient(access_token=token, base_url=settings.api_url)
    return client, TelemetryAPI(client)
