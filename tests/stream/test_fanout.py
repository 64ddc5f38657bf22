"""Tests for the EventFanout dispatcher."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from livetelem.models.telemetry import Telemetry
from livetelem.stream.codec import TelemetryReceived
from livetelem.stream.fanout import EventFanout


def _make_event(device_id: str = "esp-01") -> TelemetryReceived:
    return TelemetryReceived(Telemetry(device_id=device_id, heading_degrees=1.0))


class TestEventFanout:
    def test_empty_fanout(self) -> None:
        fanout = EventFanout()
        assert fanout.subscriber_count == 0
        assert not fanout.has_subscribers()

    def test_subscribe(self) -> None:
        fanout = EventFanout()
        fanout.subscribe(AsyncMock())
        fanout.subscribe(AsyncMock())
        assert fanout.subscriber_count == 2
        assert fanout.has_subscribers()

    @pytest.mark.asyncio
    async def test_dispatches_to_all_subscribers(self) -> None:
        fanout = EventFanout()
        sub_a = AsyncMock()
        sub_b = AsyncMock()
        fanout.subscribe(sub_a)
        fanout.subscribe(sub_b)

        event = _make_event()
        await fanout.publish(event)

        sub_a.assert_awaited_once_with(event)
        sub_b.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_stop_others(self) -> None:
        fanout = EventFanout()
        sub_a = AsyncMock()
        sub_b = AsyncMock(side_effect=RuntimeError("boom"))
        sub_c = AsyncMock()
        fanout.subscribe(sub_a)
        fanout.subscribe(sub_b)
        fanout.subscribe(sub_c)

        event = _make_event()
        await fanout.publish(event)

        sub_a.assert_awaited_once_with(event)
        sub_b.assert_awaited_once_with(event)
        sub_c.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_unsubscribe_function(self) -> None:
        fanout = EventFanout()
        sub = AsyncMock()
        unsubscribe = fanout.subscribe(sub)
        unsubscribe()

        await fanout.publish(_make_event())

        sub.assert_not_awaited()
        assert fanout.subscriber_count == 0

    def test_unsubscribe_unknown_returns_false(self) -> None:
        fanout = EventFanout()
        assert fanout.unsubscribe(AsyncMock()) is False

    @pytest.mark.asyncio
    async def test_subscriber_removed_during_publish_still_gets_current_event(self) -> None:
        fanout = EventFanout()
        received: list[object] = []
        unsubscribe_b = None

        async def sub_a(event: object) -> None:
            assert unsubscribe_b is not None
            unsubscribe_b()

        async def sub_b(event: object) -> None:
            received.append(event)

        fanout.subscribe(sub_a)
        unsubscribe_b = fanout.subscribe(sub_b)

        await fanout.publish(_make_event())
        await fanout.publish(_make_event())

        assert len(received) == 1
