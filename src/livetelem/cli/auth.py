"""CLI commands for storing the dashboard bearer token."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from livetelem.auth.token_store import TokenStore
from livetelem.cli._options import global_options
from livetelem.models.config import AppSettings

if TYPE_CHECKING:
    from livetelem.cli.main import AppContext

auth_group = click.Group("auth", help="Access token management")


@auth_group.command("set-token")
@click.argument("token", required=False, default=None)
@global_options
def set_token_cmd(app_ctx: AppContext, token: str | None) -> None:
    """Store TOKEN in the OS keyring (prompted for when omitted)."""
    formatter = app_ctx.formatter
    if not token:
        token = click.prompt("Access token", hide_input=True).strip()
    if not token:
        raise click.UsageError("Token must not be empty.")

    store = TokenStore(profile=app_ctx.profile)
    store.save(token)

    if formatter.format == "json":
        formatter.output({"profile": store.profile, "stored": True}, command="auth.set-token")
    else:
        formatter.rich.command_result(True, f"Token stored for profile '{store.profile}'.")


@auth_group.command("status")
@global_options
def status_cmd(app_ctx: AppContext) -> None:
    """Show where the access token would come from."""
    formatter = app_ctx.formatter
    settings = AppSettings()
    store = TokenStore(profile=app_ctx.profile)

    if settings.access_token:
        source = "environment"
    elif store.has_token:
        source = "keyring"
    else:
        source = None

    info = {
        "profile": store.profile,
        "authenticated": source is not None,
        "source": source,
        "ws_url": settings.ws_url,
        "api_url": settings.api_url,
    }
    if formatter.format == "json":
        formatter.output(info, command="auth.status")
        return

    if source is None:
        formatter.rich.info("[yellow]Not authenticated.[/yellow]")
        formatter.rich.info("Run [cyan]livetelem auth set-token[/cyan] to store a token.")
    else:
        formatter.rich.info(f"Token:    [green]present[/green] ({source})")
    formatter.rich.info(f"Profile:  {store.profile}")
    formatter.rich.info(f"Stream:   {settings.ws_url or '[dim]not set[/dim]'}")
    formatter.rich.info(f"API:      {settings.api_url or '[dim]not set[/dim]'}")


@auth_group.command("clear")
@global_options
def clear_cmd(app_ctx: AppContext) -> None:
    """Remove the stored token for the profile."""
    formatter = app_ctx.formatter
    store = TokenStore(profile=app_ctx.profile)
    store.clear()

    if formatter.format == "json":
        formatter.output({"profile": store.profile, "cleared": True}, command="auth.clear")
    else:
        formatter.rich.info(f"Token cleared for profile '{store.profile}'.")
