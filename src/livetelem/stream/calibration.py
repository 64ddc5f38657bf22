"""Calibration readiness derived from ``training_live`` statistics.

One device is active at a time.  For the active device::

    uncalibrated --first stats, sample_count < min--> calibrating
    calibrating  --sample_count >= min-->             locked (+ recently_locked)
    any          --device change / reset()-->         uncalibrated

``locked`` is monotonic within a device session: a later message with a
lower sample count does not unlock.  ``recently_locked`` is a transient
flag cleared by a timer owned by the state machine (or, with no running
event loop, by a clock deadline checked on read); the timer is
cancelled on device change and reset so it can never clear a flag that
belongs to another session.  Still calibrating after the timeout is not a
new phase; it only raises ``is_timeout_fallback`` (low data rate).
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from livetelem.models.training import TrainingStats

logger = logging.getLogger(__name__)

MIN_SAMPLES = 6
CALIBRATION_TIMEOUT_SECONDS = 12.0
LOCK_FLASH_SECONDS = 1.5


class CalibrationPhase(StrEnum):
    UNCALIBRATED = "uncalibrated"
    CALIBRATING = "calibrating"
    LOCKED = "locked"


@dataclass(frozen=True, slots=True)
class CalibrationStatus:
    """Read-only view of the calibration state at one instant."""

    device_id: str | None
    phase: CalibrationPhase
    sample_count: int
    progress_percent: int
    is_timeout_fallback: bool
    recently_locked: bool
    display_stats: TrainingStats | None

    @property
    def locked(self) -> bool:
        return self.phase is CalibrationPhase.LOCKED

    @property
    def is_calibrating(self) -> bool:
        return self.phase is CalibrationPhase.CALIBRATING


def _same_device(a: str | None, b: str | None) -> bool:
    """Device ids compare case-insensitively; the backend stores them lowercased."""
    if a is None or b is None:
        return a is b
    return a.lower() == b.lower()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class CalibrationStateMachine:
    """Tracks calibration for the active device.

    Inside a running event loop, locking schedules the ``recently_locked``
    clear with :meth:`asyncio.AbstractEventLoop.call_later`.  Outside one the
    flag expires against *clock* instead.
    """

    def __init__(
        self,
        *,
        min_samples: int = MIN_SAMPLES,
        timeout_seconds: float = CALIBRATION_TIMEOUT_SECONDS,
        lock_flash_seconds: float = LOCK_FLASH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._min_samples = min_samples
        self._timeout_seconds = timeout_seconds
        self._lock_flash_seconds = lock_flash_seconds
        self._clock = clock
        self._active_device_id: str | None = None
        self._calibration_start_at: float | None = None
        self._locked = False
        self._recently_locked = False
        self._flash_handle: asyncio.TimerHandle | None = None
        self._flash_deadline: float | None = None
        self._current: TrainingStats | None = None
        self._last_good: TrainingStats | None = None

    @property
    def min_samples(self) -> int:
        return self._min_samples

    @property
    def active_device_id(self) -> str | None:
        return self._active_device_id

    @property
    def calibration_start_at(self) -> float | None:
        return self._calibration_start_at

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def recently_locked(self) -> bool:
        self._expire_lock_flash()
        return self._recently_locked

    @property
    def current_stats(self) -> TrainingStats | None:
        return self._current

    @property
    def last_good_stats(self) -> TrainingStats | None:
        return self._last_good

    @property
    def display_stats(self) -> TrainingStats | None:
        """Latest stats if complete, else the last complete snapshot, else ``None``."""
        if self._current is not None and self._current.is_complete(self._min_samples):
            return self._current
        return self._last_good

    def observe(self, stats: TrainingStats) -> CalibrationStatus:
        """Apply one statistics message and return the resulting status.

        ``ESP-01`` and ``esp-01`` are the same device: a case-only difference
        keeps the session (and the first spelling seen).
        """
        if not _same_device(stats.device_id, self._active_device_id):
            if self._active_device_id is not None:
                logger.info(
                    "Active device changed %s -> %s; resetting calibration",
                    self._active_device_id,
                    stats.device_id,
                )
            self._reset_session()
            self._active_device_id = stats.device_id

        if self._calibration_start_at is None and stats.sample_count < self._min_samples:
            self._calibration_start_at = self._clock()

        if stats.sample_count >= self._min_samples and not self._locked:
            self._locked = True
            logger.info(
                "Calibration locked for %s at %d samples", stats.device_id, stats.sample_count
            )
            self._arm_lock_flash()

        self._current = stats
        if stats.is_complete(self._min_samples):
            self._last_good = stats
        return self.status()

    def status(self) -> CalibrationStatus:
        """Return the current :class:`CalibrationStatus`."""
        sample_count = self._current.sample_count if self._current is not None else 0

        if self._locked:
            phase = CalibrationPhase.LOCKED
            progress = 100
            timed_out = False
        elif self._current is None:
            phase = CalibrationPhase.UNCALIBRATED
            progress = 0
            timed_out = False
        else:
            phase = CalibrationPhase.CALIBRATING
            progress = min(100, _round_half_up(100 * sample_count / self._min_samples))
            elapsed = (
                self._clock() - self._calibration_start_at
                if self._calibration_start_at is not None
                else 0.0
            )
            timed_out = elapsed >= self._timeout_seconds

        return CalibrationStatus(
            device_id=self._active_device_id,
            phase=phase,
            sample_count=sample_count,
            progress_percent=progress,
            is_timeout_fallback=timed_out,
            recently_locked=self.recently_locked,
            display_stats=self.display_stats,
        )

    def reset(self) -> None:
        """Explicit (user-triggered) reset: also forgets the last good snapshot."""
        self._reset_session()
        self._active_device_id = None
        self._current = None
        self._last_good = None
        logger.debug("Calibration state reset")

    # -- Internals ---------------------------------------------------------------

    def _reset_session(self) -> None:
        self._cancel_lock_flash()
        self._calibration_start_at = None
        self._locked = False
        self._recently_locked = False

    def _arm_lock_flash(self) -> None:
        # Re-arming replaces the pending clear; timers never stack.
        self._cancel_lock_flash()
        self._recently_locked = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to run a timer: expire on the first read past the deadline.
            self._flash_deadline = self._clock() + self._lock_flash_seconds
            return
        self._flash_handle = loop.call_later(self._lock_flash_seconds, self._clear_lock_flash)

    def _cancel_lock_flash(self) -> None:
        self._flash_deadline = None
        if self._flash_handle is not None:
            self._flash_handle.cancel()
            self._flash_handle = None

    def _clear_lock_flash(self) -> None:
        self._flash_handle = None
        self._recently_locked = False

    def _expire_lock_flash(self) -> None:
        if self._flash_deadline is not None and self._clock() >= self._flash_deadline:
            self._flash_deadline = None
            self._recently_locked = False
