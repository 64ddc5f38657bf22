"""Live session: the single consumer that owns all mutable ingestion state.

Wires a :class:`ConnectionManager` and a :class:`FallbackPoller` to one
:class:`HistoryBuffer`, one "latest" slot and one
:class:`CalibrationStateMachine`.  Every mutation happens here, on the
event loop, in arrival order.  Other parties observe through
:meth:`LiveSession.subscribe` and receive immutable :class:`SessionUpdate`
snapshots.

Usage::

    async with LiveSession(settings, token_provider=store_token) as session:
        session.subscribe(on_update)
        await session.wait_closed()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from livetelem.api.errors import ConfigError
from livetelem.stream.calibration import CalibrationStateMachine, CalibrationStatus
from livetelem.stream.codec import FrameCodec, TelemetryReceived, TrainingReceived
from livetelem.stream.connection import ConnectionManager, ConnectionState
from livetelem.stream.fanout import EventFanout
from livetelem.stream.history import HistoryBuffer
from livetelem.stream.poller import FallbackPoller

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from livetelem.api.telemetry import TelemetryAPI
    from livetelem.models.config import AppSettings
    from livetelem.models.telemetry import Telemetry
    from livetelem.models.training import TrainingStats
    from livetelem.stream.codec import StreamEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionUpdate:
    """Snapshot delivered to session subscribers after each applied change.

    ``source`` is ``"stream"`` or ``"poll"``.
    """

    event: StreamEvent
    source: str
    latest: Telemetry | None
    history: tuple[Telemetry, ...]
    calibration: CalibrationStatus


class LiveSession:
    """Single-consumer ingestion session for the dashboard backend.

    Parameters
    ----------
    settings:
        Endpoint URLs and tuning knobs.
    token_provider:
        Called on every :meth:`start`; returns the bearer token or ``None``.
        Defaults to ``settings.access_token``.
    device_id:
        Selected device.  When unset, the active device follows the
        latest accepted record.
    connection_factory:
        Builds the :class:`ConnectionManager` for a token.
    api:
        REST collaborators for the polling fallback.  Without one the
        session runs stream-only.
    """

    def __init__(
        self,
        settings: AppSettings,
        *,
        token_provider: Callable[[], str | None] | None = None,
        device_id: str | None = None,
        connection_factory: Callable[[str], ConnectionManager] | None = None,
        api: TelemetryAPI | None = None,
    ) -> None:
        self._settings = settings
        self._token_provider = token_provider or (lambda: settings.access_token)
        self._selected_device = device_id or settings.device_id
        self._connection_factory = connection_factory or self._default_connection
        self._api = api
        self._codec = FrameCodec()
        self._history = HistoryBuffer(settings.max_history)
        self._calibration = CalibrationStateMachine(
            min_samples=settings.min_samples,
            timeout_seconds=settings.calibration_timeout,
            lock_flash_seconds=settings.lock_flash_seconds,
        )
        self._latest: Telemetry | None = None
        self._fanout = EventFanout()
        self._connection: ConnectionManager | None = None
        self._unsubscribe_stream: Callable[[], None] | None = None
        self._poller: FallbackPoller | None = None
        self._auth_missing = False

    # -- Read-only state -------------------------------------------------------

    @property
    def latest(self) -> Telemetry | None:
        return self._latest

    @property
    def history(self) -> tuple[Telemetry, ...]:
        return self._history.snapshot()

    @property
    def calibration(self) -> CalibrationStatus:
        return self._calibration.status()

    @property
    def connection(self) -> ConnectionManager | None:
        return self._connection

    @property
    def poller(self) -> FallbackPoller | None:
        return self._poller

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and self._connection.is_connected

    @property
    def is_running(self) -> bool:
        return self._connection is not None

    @property
    def auth_missing(self) -> bool:
        """``True`` if the last :meth:`start` found no credential."""
        return self._auth_missing

    @property
    def last_poll_error(self) -> str | None:
        """Most recent polling collaborator fault, or ``None``."""
        return self._poller.last_error if self._poller is not None else None

    @property
    def active_device_id(self) -> str | None:
        """Selected device, else the device of the latest record."""
        if self._selected_device:
            return self._selected_device
        if self._latest is not None:
            return self._latest.device_id
        return None

    # -- Subscriptions ---------------------------------------------------------

    def subscribe(
        self, callback: Callable[[SessionUpdate], Awaitable[None]]
    ) -> Callable[[], None]:
        """Register an async observer.  Returns an unsubscribe function."""
        return self._fanout.subscribe(callback)

    # -- Lifecycle -------------------------------------------------------------

    def start(self) -> bool:
        """Open the stream and arm the polling fallback.

        Returns ``False`` without opening anything when no credential is
        available; call again once one has been supplied.  Idempotent
        while running.  A connection whose token was rejected does not
        count as running, so calling again after re-authenticating dials
        with the new token.
        """
        if self._connection is not None:
            if not self._connection.auth_failed:
                return True
            self._drop_rejected_connection()
        if not self._settings.ws_url:
            raise ConfigError("No stream URL configured. Set LIVETELEM_WS_URL.")

        token = self._token_provider()
        if not token:
            self._auth_missing = True
            logger.warning("No access token available; live stream not opened")
            return False
        self._auth_missing = False

        connection = self._connection_factory(token)
        self._unsubscribe_stream = connection.subscribe(self._on_stream_event)
        connection.add_state_listener(self._on_connection_state)
        connection.open()
        self._connection = connection

        if self._api is not None:
            self._poller = FallbackPoller(
                self._api,
                device_id=lambda: self.active_device_id,
                suppressed=lambda: self.is_connected,
                on_training=self._on_polled_training,
                on_rows=self._on_polled_rows,
                interval=self._settings.poll_interval,
                window=self._settings.training_window,
            )
            self._poller.start()
        logger.info("Live session started for %s", connection.url)
        return True

    async def stop(self) -> None:
        """Stop the stream and cancel polling.  Safe to call repeatedly."""
        if self._unsubscribe_stream is not None:
            self._unsubscribe_stream()
            self._unsubscribe_stream = None
        if self._poller is not None:
            await self._poller.stop()
        if self._connection is not None:
            await self._connection.stop()
            self._connection = None

    def _drop_rejected_connection(self) -> None:
        if self._unsubscribe_stream is not None:
            self._unsubscribe_stream()
            self._unsubscribe_stream = None
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None
        self._connection = None
        logger.info("Discarding stream connection with a rejected token")

    def _on_connection_state(self, state: ConnectionState) -> None:
        connection = self._connection
        if connection is None or not connection.auth_failed:
            return
        if self._poller is not None and self._poller.is_running:
            logger.warning("Stream rejected the access token; polling stopped")
            self._poller.cancel()

    async def wait_closed(self) -> None:
        """Wait until the stream gives up (stopped or token rejected)."""
        if self._connection is not None:
            await self._connection.wait_closed()

    def select_device(self, device_id: str | None) -> None:
        """Change the selected device and reset its calibration session."""
        if device_id == self._selected_device:
            return
        self._selected_device = device_id
        self._calibration.reset()

    def reset(self) -> None:
        """Forget history, the latest record and all calibration state."""
        self._history.reset()
        self._latest = None
        self._calibration.reset()

    async def __aenter__(self) -> LiveSession:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    # -- Event application -----------------------------------------------------

    def _default_connection(self, token: str) -> ConnectionManager:
        assert self._settings.ws_url is not None
        return ConnectionManager(
            self._settings.ws_url,
            token=token,
            secure_origin=self._settings.secure_origin,
            codec=self._codec,
            backoff_floor=self._settings.backoff_floor,
            backoff_ceiling=self._settings.backoff_ceiling,
        )

    def apply(self, event: StreamEvent) -> None:
        """Apply one streamed event to the owned state."""
        if isinstance(event, TelemetryReceived):
            self._history.push(event.record)
            self._latest = event.record
        elif isinstance(event, TrainingReceived):
            self._calibration.observe(event.stats)

    async def _on_stream_event(self, event: StreamEvent) -> None:
        self.apply(event)
        await self._publish(event, "stream")

    async def _on_polled_training(self, stats: TrainingStats) -> None:
        event = TrainingReceived(stats)
        self._calibration.observe(stats)
        await self._publish(event, "poll")

    async def _on_polled_rows(self, rows: list[Telemetry]) -> None:
        self._history.merge_many(rows)
        newest = rows[0]
        self._latest = newest
        await self._publish(TelemetryReceived(newest), "poll")

    async def _publish(self, event: StreamEvent, source: str) -> None:
        if not self._fanout.has_subscribers():
            return
        update = SessionUpdate(
            event=event,
            source=source,
            latest=self._latest,
            history=self._history.snapshot(),
            calibration=self._calibration.status(),
        )
        await self._fanout.publish(update)

    def describe(self) -> dict[str, Any]:
        """Plain-dict status summary for CLI output."""
        connection = self._connection
        return {
            "state": connection.state.value if connection else ConnectionState.DISCONNECTED.value,
            "url": connection.url if connection else self._settings.ws_url,
            "active_device_id": self.active_device_id,
            "frames": connection.frame_count if connection else 0,
            "discarded": connection.discard_count if connection else 0,
            "history": len(self._history),
            "last_poll_error": self.last_poll_error,
        }
