"""Command-line entry point for livetelem."""

from __future__ import annotations

import dataclasses
import logging
import sys

import click

from livetelem.api.errors import AuthError, CollaboratorError, ConfigError
from livetelem.output.formatter import OutputFormatter

_NOISY_LOGGERS = ("httpx", "httpcore", "websockets")

_AUTH_HINT = "Run 'livetelem auth set-token' to store a new token."

# ---------------------------------------------------------------------------
# Per-invocation state
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class AppContext:
    """Options shared by every command, available through ``ctx.obj``.

    :func:`main` creates the instance before Click parses anything, so
    error rendering still knows the requested output format after the
    command has failed.
    """

    profile: str = "default"
    output_format: str | None = None
    quiet: bool = False
    verbose: bool = False
    _formatter: OutputFormatter | None = dataclasses.field(default=None, repr=False)

    @property
    def formatter(self) -> OutputFormatter:
        if self._formatter is None:
            self._formatter = OutputFormatter(
                force_format="quiet" if self.quiet else self.output_format
            )
        return self._formatter

    def configure_logging(self) -> None:
        """Route log records through Rich on stderr.

        DEBUG with ``--verbose``, otherwise WARNING.  HTTP and WebSocket
        library loggers stay at WARNING either way.
        """
        from rich.console import Console
        from rich.logging import RichHandler

        logging.basicConfig(
            level=logging.DEBUG if self.verbose else logging.WARNING,
            format="%(name)s: %(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
            force=True,
        )
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="livetelem")
@click.option("--profile", default="default", help="Token profile name")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["rich", "json", "quiet"]),
    default=None,
    help="Output format (default: auto-detect)",
)
@click.option("--quiet", is_flag=True, default=False, help="Suppress normal output")
@click.option("--verbose", is_flag=True, default=False, help="Enable verbose logging")
@click.pass_context
def cli(
    ctx: click.Context,
    profile: str,
    output_format: str | None,
    quiet: bool,
    verbose: bool,
) -> None:
    """Watch live device telemetry and calibration from the dashboard backend."""
    app_ctx = ctx.ensure_object(AppContext)
    app_ctx.profile = profile
    app_ctx.output_format = output_format
    app_ctx.quiet = quiet
    app_ctx.verbose = verbose
    app_ctx._formatter = None
    app_ctx.configure_logging()


def _register_commands() -> None:
    from livetelem.cli.auth import auth_group
    from livetelem.cli.stream import devices_cmd, history_cmd, latest_cmd, watch_cmd

    for command in (auth_group, devices_cmd, history_cmd, latest_cmd, watch_cmd):
        cli.add_command(command)


_register_commands()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Run the CLI and turn failures into exit codes and rendered errors."""
    app_ctx = AppContext()
    try:
        cli.main(args=argv, standalone_mode=False, obj=app_ctx)
    except click.exceptions.Exit as exc:
        raise SystemExit(exc.exit_code) from None
    except click.exceptions.Abort:
        raise SystemExit(1) from None
    except click.exceptions.ClickException as exc:
        exc.show()
        raise SystemExit(exc.exit_code) from None
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except Exception as exc:
        command = _command_path(argv)
        formatter = app_ctx.formatter
        if not _render_known_error(exc, formatter, command):
            formatter.output_error(code=type(exc).__name__, message=str(exc), command=command)
        raise SystemExit(1) from exc


def _command_path(argv: list[str] | None) -> str:
    """Dotted name of the subcommand selected by *argv*, e.g. ``auth.status``."""
    args = sys.argv[1:] if argv is None else argv
    command: click.Command = cli
    parts: list[str] = []
    for arg in args:
        if not isinstance(command, click.Group):
            break
        sub = command.commands.get(arg)
        if sub is not None:
            parts.append(arg)
            command = sub
    return ".".join(parts) or "unknown"


def _render_known_error(exc: Exception, formatter: OutputFormatter, command: str) -> bool:
    if isinstance(exc, AuthError):
        _render_auth_error(exc, formatter, command)
    elif isinstance(exc, ConfigError):
        formatter.output_error(code="config_error", message=str(exc), command=command)
    elif isinstance(exc, CollaboratorError):
        formatter.output_error(code="collaborator_error", message=str(exc), command=command)
    else:
        return False
    return True


def _render_auth_error(exc: AuthError, formatter: OutputFormatter, command: str) -> None:
    message = str(exc) or "The backend rejected the access token."

    if formatter.format == "json":
        formatter.output_error(
            code="auth_failed", message=f"{message} {_AUTH_HINT}", command=command
        )
        return

    formatter.rich.error(message)
    formatter.rich.info("")
    formatter.rich.info("To fix:")
    formatter.rich.info("  [cyan]livetelem auth set-token[/cyan]")
    formatter.rich.info("[dim]or export LIVETELEM_ACCESS_TOKEN for a single run.[/dim]")
