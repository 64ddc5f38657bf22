"""Decorator that lets global options appear after a subcommand name."""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any

import click

if TYPE_CHECKING:
    from livetelem.cli.main import AppContext

_LOCAL_OPTIONS = (
    click.option("--profile", "local_profile", default=None, help="Token profile name"),
    click.option(
        "--format",
        "local_output_format",
        type=click.Choice(["rich", "json", "quiet"]),
        default=None,
        help="Output format (default: auto-detect)",
    ),
    click.option("--quiet", "local_quiet", is_flag=True, help="Suppress normal output"),
    click.option("--verbose", "local_verbose", is_flag=True, help="Enable verbose logging"),
)


def _apply_overrides(
    app_ctx: AppContext,
    *,
    profile: str | None,
    output_format: str | None,
    quiet: bool,
    verbose: bool,
) -> None:
    if profile is not None:
        app_ctx.profile = profile
    if output_format is not None or quiet:
        app_ctx.output_format = output_format or app_ctx.output_format
        app_ctx.quiet = app_ctx.quiet or quiet
        app_ctx._formatter = None
    if verbose and not app_ctx.verbose:
        app_ctx.verbose = True
        app_ctx.configure_logging()


def global_options(f: Any) -> Any:
    """Accept ``--profile``, ``--format``, ``--quiet`` and ``--verbose`` on a leaf command.

    ``livetelem watch --format json`` then behaves like
    ``livetelem --format json watch``; a value given on the subcommand wins
    over the one given on the root group.
    """

    @click.pass_obj
    def wrapper(app_ctx: AppContext, /, **kwargs: Any) -> Any:
        _apply_overrides(
            app_ctx,
            profile=kwargs.pop("local_profile", None),
            output_format=kwargs.pop("local_output_format", None),
            quiet=kwargs.pop("local_quiet", False),
            verbose=kwargs.pop("local_verbose", False),
        )
        return f(app_ctx, **kwargs)

    functools.update_wrapper(wrapper, f)
    for option in reversed(_LOCAL_OPTIONS):
        wrapper = option(wrapper)
    return wrapper
