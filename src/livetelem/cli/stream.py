"""CLI commands for devices, telemetry rows and the live stream."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import click

from livetelem._internal.async_utils import run_async
from livetelem.api.errors import AuthError, ConfigError
from livetelem.cli._client import get_api, resolve_token
from livetelem.cli._options import global_options
from livetelem.models.config import AppSettings
from livetelem.stream.codec import TelemetryReceived
from livetelem.stream.session import LiveSession

if TYPE_CHECKING:
    from livetelem.cli.main import AppContext
    from livetelem.output.formatter import OutputFormatter
    from livetelem.stream.calibration import CalibrationStatus
    from livetelem.stream.session import SessionUpdate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# devices / history / latest
# ---------------------------------------------------------------------------


@click.command("devices")
@global_options
def devices_cmd(app_ctx: AppContext) -> None:
    """List the devices registered to the account."""
    run_async(_cmd_devices(app_ctx))


async def _cmd_devices(app_ctx: AppContext) -> None:
    formatter = app_ctx.formatter
    client, api = get_api(app_ctx)
    try:
        devices = await api.devices()
    finally:
        await client.close()

    if formatter.format == "json":
        formatter.output(devices, command="devices")
    elif devices:
        formatter.rich.device_list(devices)
    else:
        formatter.rich.info("No devices registered.")


@click.command("history")
@click.option("--device", "device_id", default=None, help="Only show rows for this device")
@click.option("--limit", type=int, default=None, help="Maximum rows (default: history size)")
@global_options
def history_cmd(app_ctx: AppContext, device_id: str | None, limit: int | None) -> None:
    """Fetch recent telemetry rows, newest first."""
    run_async(_cmd_history(app_ctx, device_id, limit))


async def _cmd_history(app_ctx: AppContext, device_id: str | None, limit: int | None) -> None:
    formatter = app_ctx.formatter
    settings = AppSettings()
    client, api = get_api(app_ctx, settings)
    try:
        if device_id:
            records = await api.latest(device_id, limit=limit or settings.max_history)
        else:
            records = await api.history()
    finally:
        await client.close()

    records = records[: limit or settings.max_history]
    if formatter.format == "json":
        formatter.output(records, command="history")
    elif records:
        formatter.rich.history_table(records)
    else:
        formatter.rich.info("No telemetry rows.")


@click.command("latest")
@click.option(
    "--device", "device_id", default=None, help="Device id (default: LIVETELEM_DEVICE_ID)"
)
@global_options
def latest_cmd(app_ctx: AppContext, device_id: str | None) -> None:
    """Show the newest telemetry row for one device."""
    run_async(_cmd_latest(app_ctx, device_id))


async def _cmd_latest(app_ctx: AppContext, device_id: str | None) -> None:
    formatter = app_ctx.formatter
    settings = AppSettings()
    device_id = device_id or settings.device_id
    if not device_id:
        raise ConfigError("No device given. Pass --device or set LIVETELEM_DEVICE_ID.")

    client, api = get_api(app_ctx, settings)
    try:
        records = await api.latest(device_id)
    finally:
        await client.close()

    record = records[0] if records else None
    if formatter.format == "json":
        formatter.output(record, command="latest")
    elif record is not None:
        formatter.rich.telemetry(record)
    else:
        formatter.rich.info(f"No telemetry for {device_id}.")


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------


@click.command("watch")
@click.option("--device", "device_id", default=None, help="Device to follow (default: latest)")
@click.option(
    "--duration",
    type=float,
    default=None,
    help="Stop after this many seconds (default: run until Ctrl+C)",
)
@global_options
def watch_cmd(app_ctx: AppContext, device_id: str | None, duration: float | None) -> None:
    """Stream live telemetry and calibration status.

    Opens the WebSocket stream, reconnecting with backoff, and falls back
    to REST polling while it is down (when LIVETELEM_API_URL is set).

    \b
    Examples:
      livetelem watch
      livetelem watch --device esp32-01 --duration 60
      livetelem --format json watch | jq .data
    """
    run_async(_cmd_watch(app_ctx, device_id, duration))


class _WatchPrinter:
    """Session subscriber that prints records and calibration changes."""

    def __init__(self, formatter: OutputFormatter) -> None:
        self._formatter = formatter
        self._last_calibration: tuple[object, ...] | None = None

    async def __call__(self, update: SessionUpdate) -> None:
        if isinstance(update.event, TelemetryReceived):
            if self._formatter.format == "json":
                self._formatter.output_event(update.event.record, command="watch.telemetry")
            else:
                self._formatter.rich.telemetry_line(update.event.record)
            return
        self._calibration_changed(update.calibration)

    def _calibration_changed(self, status: CalibrationStatus) -> None:
        key = (
            status.device_id,
            status.phase,
            status.progress_percent,
            status.is_timeout_fallback,
            status.recently_locked,
        )
        if key == self._last_calibration:
            return
        self._last_calibration = key
        if self._formatter.format == "json":
            self._formatter.output_event(status, command="watch.calibration")
        else:
            self._formatter.rich.calibration_status(status)


async def _cmd_watch(app_ctx: AppContext, device_id: str | None, duration: float | None) -> None:
    formatter = app_ctx.formatter
    settings = AppSettings()
    if not settings.ws_url:
        raise ConfigError("No stream URL configured. Set LIVETELEM_WS_URL.")

    client = api = None
    if settings.api_url and resolve_token(app_ctx, settings):
        client, api = get_api(app_ctx, settings)

    session = LiveSession(
        settings,
        token_provider=lambda: resolve_token(app_ctx, settings),
        device_id=device_id,
        api=api,
    )
    session.subscribe(_WatchPrinter(formatter))

    try:
        if not session.start():
            raise AuthError(
                "No access token found. Run 'livetelem auth set-token' "
                "or set LIVETELEM_ACCESS_TOKEN."
            )
        if formatter.format != "json":
            url = session.describe()["url"]
            formatter.rich.info(f"[dim]Watching {url} (Ctrl+C to stop)[/dim]")

        try:
            await asyncio.wait_for(session.wait_closed(), timeout=duration)
        except TimeoutError:
            logger.debug("Watch duration of %.1fs elapsed", duration)

        connection = session.connection
        if connection is not None and connection.auth_failed:
            raise AuthError("The stream rejected the access token.")
    finally:
        summary = session.describe()
        await session.stop()
        if client is not None:
            await client.close()

    if formatter.format == "json":
        formatter.output(summary, command="watch")
    else:
        formatter.rich.panel(
            f"{summary['frames']} frame(s), {summary['discarded']} discarded, "
            f"{summary['history']} in history"
        )
