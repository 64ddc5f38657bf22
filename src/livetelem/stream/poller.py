"""REST polling fallback used while the live stream is unavailable.

Ticks every ``interval`` seconds for the active device.  A tick is skipped
whenever the stream is connected so stale polled data never clobbers
fresh streamed state.  Collaborator faults are recorded in
:attr:`FallbackPoller.last_error` and retried on the next tick; an
authentication fault stops the poller for the rest of the session.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from livetelem.api.errors import AuthError, CollaboratorError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from livetelem.api.telemetry import TelemetryAPI
    from livetelem.models.telemetry import Telemetry
    from livetelem.models.training import TrainingStats

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0


class FallbackPoller:
    """Periodically fetches training stats and the latest rows for one device."""

    def __init__(
        self,
        api: TelemetryAPI,
        *,
        device_id: Callable[[], str | None],
        suppressed: Callable[[], bool],
        on_training: Callable[[TrainingStats], Awaitable[None]],
        on_rows: Callable[[list[Telemetry]], Awaitable[None]],
        interval: float = POLL_INTERVAL,
        window: int = 120,
        row_limit: int = 1,
    ) -> None:
        self._api = api
        self._device_id = device_id
        self._suppressed = suppressed
        self._on_training = on_training
        self._on_rows = on_rows
        self._interval = interval
        self._window = window
        self._row_limit = row_limit
        self._task: asyncio.Task[None] | None = None
        self._last_error: str | None = None
        self._auth_failed = False
        self._tick_count = 0

    @property
    def last_error(self) -> str | None:
        """Message of the most recent collaborator fault, cleared on success."""
        return self._last_error

    @property
    def auth_failed(self) -> bool:
        return self._auth_failed

    @property
    def tick_count(self) -> int:
        """Ticks that actually queried the collaborators."""
        return self._tick_count

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling task (no-op if already running)."""
        if self.is_running or self._auth_failed:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="livetelem-poller")

    def cancel(self) -> None:
        """Cancel the polling task without waiting for it to unwind."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def stop(self) -> None:
        """Cancel the polling task.  Safe to call repeatedly."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        while not self._auth_failed:
            await self.tick()
            if self._auth_failed:
                break
            await asyncio.sleep(self._interval)
        logger.warning("Polling stopped: access token rejected")

    async def tick(self) -> bool:
        """Poll once.  Returns ``True`` if the collaborators were queried."""
        if self._suppressed():
            return False
        device_id = self._device_id()
        if not device_id:
            return False

        self._tick_count += 1
        self._last_error = None
        try:
            stats = await self._api.training_live(device_id, window=self._window)
        except AuthError as exc:
            self._record_auth_failure(exc)
            return True
        except CollaboratorError as exc:
            self._record_error("training/live", exc)
        else:
            await self._on_training(stats)

        try:
            rows = await self._api.latest(device_id, limit=self._row_limit)
        except AuthError as exc:
            self._record_auth_failure(exc)
            return True
        except CollaboratorError as exc:
            self._record_error("telemetry", exc)
        else:
            if rows:
                await self._on_rows(rows)
        return True

    def _record_error(self, what: str, exc: CollaboratorError) -> None:
        self._last_error = f"{what}: {exc}"
        logger.warning("Polling %s failed: %s", what, exc)

    def _record_auth_failure(self, exc: AuthError) -> None:
        self._auth_failed = True
        self._last_error = str(exc)
        logger.error("Polling rejected: %s", exc)
