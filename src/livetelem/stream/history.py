"""Bounded newest-first history of accepted telemetry records.

Two insertion policies share one buffer:

* :meth:`HistoryBuffer.push` -- stream path.  Streamed data is assumed
  monotonic, so every record is kept and the oldest drops on overflow.
* :meth:`HistoryBuffer.merge` -- polling path.  Polled rows may overlap in
  time, so the buffer is rebuilt with duplicates on
  ``(device_id, device_timestamp)`` collapsed, first occurrence wins.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from livetelem.models.telemetry import Telemetry

MAX_HISTORY = 25


class HistoryBuffer:
    """Single-event-loop store of the most recent records, newest first."""

    def __init__(self, capacity: int = MAX_HISTORY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._records: deque[Telemetry] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, record: Telemetry) -> None:
        """Prepend *record*; drop the oldest once over capacity."""
        self._records.appendleft(record)
        if len(self._records) > self._capacity:
            self._records.pop()

    def merge(self, record: Telemetry) -> None:
        """Prepend *record*, collapse duplicate keys, truncate to capacity."""
        seen: set[tuple[object, ...]] = set()
        rebuilt: deque[Telemetry] = deque()
        for candidate in (record, *self._records):
            key = candidate.dedupe_key
            if key in seen:
                continue
            seen.add(key)
            rebuilt.append(candidate)
            if len(rebuilt) == self._capacity:
                break
        self._records = rebuilt

    def merge_many(self, records: Iterable[Telemetry]) -> None:
        """Merge polled *records* given newest-first, so the newest ends up first."""
        for record in reversed(list(records)):
            self.merge(record)

    def latest(self) -> Telemetry | None:
        """Return the newest record, or ``None`` when empty."""
        return self._records[0] if self._records else None

    def reset(self) -> None:
        self._records.clear()

    def snapshot(self) -> tuple[Telemetry, ...]:
        """Return an immutable newest-first copy of the buffer."""
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Telemetry]:
        return iter(tuple(self._records))
