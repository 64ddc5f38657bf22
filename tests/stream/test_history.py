"""Tests for HistoryBuffer stream and poll-merge policies."""

from __future__ import annotations

import pytest

from livetelem.models.telemetry import Telemetry
from livetelem.stream.history import MAX_HISTORY, HistoryBuffer


def _rec(ts: int, device_id: str = "d1", heading: float = 0.0) -> Telemetry:
    return Telemetry(device_id=device_id, device_timestamp=ts, heading_degrees=heading)


class TestPush:
    def test_empty(self) -> None:
        buf = HistoryBuffer()
        assert len(buf) == 0
        assert buf.latest() is None
        assert buf.capacity == MAX_HISTORY == 25

    def test_newest_first(self) -> None:
        buf = HistoryBuffer()
        buf.push(_rec(1))
        buf.push(_rec(2))
        assert [r.device_timestamp for r in buf] == [2, 1]
        assert buf.latest() == _rec(2)

    def test_thirty_frames_keep_last_twenty_five(self) -> None:
        buf = HistoryBuffer()
        for ts in range(30):
            buf.push(_rec(ts))
        assert len(buf) == 25
        stamps = [r.device_timestamp for r in buf.snapshot()]
        assert stamps == list(range(29, 4, -1))

    def test_push_keeps_duplicates(self) -> None:
        buf = HistoryBuffer()
        buf.push(_rec(1))
        buf.push(_rec(1))
        assert len(buf) == 2

    def test_reset(self) -> None:
        buf = HistoryBuffer()
        buf.push(_rec(1))
        buf.reset()
        assert len(buf) == 0
        assert buf.latest() is None

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            HistoryBuffer(0)


class TestMerge:
    def test_duplicate_key_keeps_first_in_iteration_order(self) -> None:
        buf = HistoryBuffer()
        buf.merge(_rec(1, heading=10.0))
        buf.merge(_rec(1, heading=99.0))
        assert len(buf) == 1
        assert buf.latest() is not None
        assert buf.latest().heading_degrees == 99.0

    def test_same_timestamp_different_device_is_kept(self) -> None:
        buf = HistoryBuffer()
        buf.merge(_rec(1, device_id="a"))
        buf.merge(_rec(1, device_id="b"))
        assert len(buf) == 2

    def test_merge_truncates(self) -> None:
        buf = HistoryBuffer(capacity=3)
        for ts in range(5):
            buf.merge(_rec(ts))
        assert [r.device_timestamp for r in buf] == [4, 3, 2]

    def test_merge_many_newest_first(self) -> None:
        buf = HistoryBuffer()
        buf.push(_rec(1))
        buf.merge_many([_rec(3), _rec(2), _rec(1)])
        assert [r.device_timestamp for r in buf] == [3, 2, 1]

    def test_overlapping_polls_collapse(self) -> None:
        buf = HistoryBuffer()
        buf.merge_many([_rec(2), _rec(1)])
        buf.merge_many([_rec(3), _rec(2)])
        assert [r.device_timestamp for r in buf] == [3, 2, 1]

    def test_snapshot_is_immutable_copy(self) -> None:
        buf = HistoryBuffer()
        buf.push(_rec(1))
        snap = buf.snapshot()
        buf.push(_rec(2))
        assert len(snap) == 1
        assert isinstance(snap, tuple)
