"""Persistent WebSocket connection to the telemetry stream.

One :class:`ConnectionManager` owns one logical connection at a time::

    disconnected --open()--> connecting --upgrade ok--> connected
    connecting|connected --close/error--> disconnected --(backoff)--> connecting
    any --stop()--> disconnected   (terminal: no further reconnects)

Reconnection uses exponential backoff (1s floor -> 15s ceiling, factor 2),
reset to the floor on every successful connect.  Frames are never retried:
the stream is best-effort, at-most-once per frame.  Each inbound frame is
decoded by :class:`FrameCodec` and published to subscribers as a domain
event; malformed frames are logged and skipped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from websockets.exceptions import InvalidStatus

from livetelem.stream.codec import Discard, FrameCodec
from livetelem.stream.fanout import EventFanout

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from livetelem.stream.codec import StreamEvent

logger = logging.getLogger(__name__)

BACKOFF_FLOOR = 1.0
BACKOFF_CEILING = 15.0
BACKOFF_FACTOR = 2.0

_AUTH_REJECTED = frozenset({401, 403})


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def secure_url(url: str, secure_origin: bool) -> str:
    """Rewrite ``ws://`` to ``wss://`` when hosted on an encrypted origin."""
    if secure_origin and url.startswith("ws://"):
        return "wss://" + url[len("ws://") :]
    return url


def _rejected_status(exc: InvalidStatus) -> int | None:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)


class ConnectionManager:
    """Owns the stream socket, its subscriber set, and the backoff counter.

    Parameters
    ----------
    url:
        Stream endpoint (``ws://`` or ``wss://``).
    token:
        Bearer token sent as an ``Authorization`` header on the upgrade.
    secure_origin:
        Upgrade ``ws://`` to ``wss://`` before dialing.
    connect:
        Coroutine function used to dial; defaults to
        :func:`websockets.asyncio.client.connect`.
    sleep:
        Coroutine function used for backoff delays.
    """

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        secure_origin: bool = False,
        codec: FrameCodec | None = None,
        backoff_floor: float = BACKOFF_FLOOR,
        backoff_ceiling: float = BACKOFF_CEILING,
        connect: Callable[..., Awaitable[Any]] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._secure_origin = secure_origin
        self._url = secure_url(url, secure_origin)
        self._token = token
        self._codec = codec or FrameCodec()
        self._backoff_floor = backoff_floor
        self._backoff_ceiling = max(backoff_ceiling, backoff_floor)
        self._backoff = backoff_floor
        self._connect = connect
        self._sleep = sleep
        self._fanout = EventFanout()
        self._state_listeners: list[Callable[[ConnectionState], None]] = []
        self._state = ConnectionState.DISCONNECTED
        self._ws: Any = None
        self._run_task: asyncio.Task[None] | None = None
        self._stopped = False
        self._auth_failed = False
        self._frame_count = 0
        self._discard_count = 0

    # -- Read-only state -------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def backoff(self) -> float:
        """Delay in seconds before the next reconnect attempt."""
        return self._backoff

    @property
    def auth_failed(self) -> bool:
        """``True`` once the server rejected the bearer token."""
        return self._auth_failed

    @property
    def frame_count(self) -> int:
        """Frames decoded and published since construction."""
        return self._frame_count

    @property
    def discard_count(self) -> int:
        """Frames dropped as malformed or invalid since construction."""
        return self._discard_count

    # -- Subscriptions ---------------------------------------------------------

    def subscribe(self, callback: Callable[[StreamEvent], Awaitable[None]]) -> Callable[[], None]:
        """Register an async event subscriber.  Returns an unsubscribe function.

        Subscribers can be added and removed at any time without touching
        the socket.
        """
        return self._fanout.subscribe(callback)

    def add_state_listener(self, callback: Callable[[ConnectionState], None]) -> None:
        """Register a synchronous callback invoked on every state change."""
        self._state_listeners.append(callback)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug("Stream %s: %s -> %s", self._url, self._state.value, state.value)
        self._state = state
        for listener in tuple(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.warning("State listener %s failed", listener, exc_info=True)

    # -- Lifecycle -------------------------------------------------------------

    def open(self, url: str | None = None) -> None:
        """Start connecting in the background.

        Idempotent while connecting or connected: a second call never opens
        a second socket.  Must be called from a running event loop.
        """
        if self._run_task is not None and not self._run_task.done():
            return
        if url is not None:
            self._url = secure_url(url, self._secure_origin)
        self._stopped = False
        self._auth_failed = False
        self._backoff = self._backoff_floor
        self._set_state(ConnectionState.CONNECTING)
        self._run_task = asyncio.get_running_loop().create_task(
            self._run(), name=f"livetelem-stream:{self._url}"
        )

    async def stop(self) -> None:
        """Close the socket and cancel any pending reconnect.

        Safe to call repeatedly and from any state.  No reconnect attempt
        happens after this returns.
        """
        self._stopped = True
        task = self._run_task
        self._run_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._close_socket()
        self._set_state(ConnectionState.DISCONNECTED)

    async def wait_closed(self) -> None:
        """Wait until the background run task ends (stop or auth rejection)."""
        task = self._run_task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _close_socket(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()

    # -- Run loop --------------------------------------------------------------

    async def _dial(self) -> Any:
        connect = self._connect
        if connect is None:
            import websockets.asyncio.client as ws_client

            connect = ws_client.connect

        headers: dict[str, str] = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return await connect(self._url, additional_headers=headers)

    async def _run(self) -> None:
        while not self._stopped:
            self._set_state(ConnectionState.CONNECTING)
            try:
                ws = await self._dial()
            except InvalidStatus as exc:
                status = _rejected_status(exc)
                if status in _AUTH_REJECTED:
                    self._auth_failed = True
                    self._set_state(ConnectionState.DISCONNECTED)
                    logger.error(
                        "Stream %s rejected the bearer token (HTTP %s); not reconnecting",
                        self._url,
                        status,
                    )
                    return
                logger.info("Stream upgrade to %s failed: HTTP %s", self._url, status)
            except Exception as exc:
                logger.info("Stream connect to %s failed: %s", self._url, exc)
            else:
                self._ws = ws
                self._backoff = self._backoff_floor
                self._set_state(ConnectionState.CONNECTED)
                logger.info("Connected to telemetry stream at %s", self._url)
                try:
                    await self._pump(ws)
                finally:
                    await self._close_socket()

            self._set_state(ConnectionState.DISCONNECTED)
            if self._stopped:
                break

            delay = self._backoff
            logger.info("Reconnecting to %s in %.1fs", self._url, delay)
            await self._sleep(delay)
            self._backoff = min(self._backoff * BACKOFF_FACTOR, self._backoff_ceiling)

    async def _pump(self, ws: Any) -> None:
        """Read frames until the socket closes or errors."""
        try:
            async for raw in ws:
                await self._dispatch(raw)
        except Exception:
            # ConnectionClosed and other transport errors
            logger.info("Stream %s closed", self._url, exc_info=True)
        else:
            logger.info("Stream %s closed by server", self._url)

    async def _dispatch(self, raw: str | bytes) -> None:
        event = self._codec.to_event(raw)
        if isinstance(event, Discard):
            self._discard_count += 1
            logger.warning("Discarded %s frame: %s", event.stage, event.reason)
            return
        self._frame_count += 1
        await self._fanout.publish(event)
