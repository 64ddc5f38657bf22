"""Tests for ConnectionManager lifecycle, backoff and dispatch."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from websockets.datastructures import Headers
from websockets.exceptions import InvalidStatus
from websockets.http11 import Response

from livetelem.stream.codec import TelemetryReceived, TrainingReceived
from livetelem.stream.connection import ConnectionManager, ConnectionState, secure_url

WS_URL = "ws://dash.example.com/ws"


class _MockWebSocket:
    """Minimal async-iterable WebSocket mock that ends after its frames."""

    def __init__(self, frames: list[str | bytes]) -> None:
        self._frames = frames
        self.close = AsyncMock()

    def __aiter__(self) -> _MockWebSocket:
        self._idx = 0
        return self

    async def __anext__(self) -> str | bytes:
        if self._idx >= len(self._frames):
            raise StopAsyncIteration
        frame = self._frames[self._idx]
        self._idx += 1
        return frame


class _RecordingSleep:
    """Records backoff delays and cancels the run loop after *limit* calls."""

    def __init__(self, limit: int) -> None:
        self.delays: list[float] = []
        self._limit = limit

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if len(self.delays) >= self._limit:
            raise asyncio.CancelledError


async def _block_forever(delay: float) -> None:
    await asyncio.Event().wait()


def _rejected(status: int) -> InvalidStatus:
    return InvalidStatus(Response(status, "Rejected", Headers(), b""))


class TestSecureUrl:
    def test_rewrites_on_secure_origin(self) -> None:
        assert secure_url("ws://host/ws", True) == "wss://host/ws"

    def test_unchanged_on_plain_origin(self) -> None:
        assert secure_url("ws://host/ws", False) == "ws://host/ws"

    def test_wss_untouched(self) -> None:
        assert secure_url("wss://host/ws", True) == "wss://host/ws"

    def test_manager_applies_rewrite(self) -> None:
        manager = ConnectionManager(WS_URL, secure_origin=True)
        assert manager.url == "wss://dash.example.com/ws"


class TestBackoff:
    @pytest.mark.asyncio
    async def test_capped_doubling_sequence(self) -> None:
        connect = AsyncMock(side_effect=OSError("connection refused"))
        sleep = _RecordingSleep(limit=6)
        manager = ConnectionManager(WS_URL, connect=connect, sleep=sleep)

        manager.open()
        await manager.wait_closed()

        assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 15.0, 15.0]
        assert connect.await_count == 6

    @pytest.mark.asyncio
    async def test_five_closes_without_open(self) -> None:
        connect = AsyncMock(side_effect=ConnectionResetError())
        sleep = _RecordingSleep(limit=5)
        manager = ConnectionManager(WS_URL, connect=connect, sleep=sleep)

        manager.open()
        await manager.wait_closed()

        assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 15.0]
        assert max(sleep.delays) <= 15.0

    @pytest.mark.asyncio
    async def test_backoff_resets_after_successful_connect(self) -> None:
        connect = AsyncMock(
            side_effect=[
                OSError(),
                OSError(),
                _MockWebSocket([]),
                OSError(),
                OSError(),
            ]
        )
        sleep = _RecordingSleep(limit=4)
        manager = ConnectionManager(WS_URL, connect=connect, sleep=sleep)

        manager.open()
        await manager.wait_closed()

        assert sleep.delays == [1.0, 2.0, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_custom_floor_and_ceiling(self) -> None:
        connect = AsyncMock(side_effect=OSError())
        sleep = _RecordingSleep(limit=4)
        manager = ConnectionManager(
            WS_URL, connect=connect, sleep=sleep, backoff_floor=0.5, backoff_ceiling=1.5
        )

        manager.open()
        await manager.wait_closed()

        assert sleep.delays == [0.5, 1.0, 1.5, 1.5]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_prevents_reconnect(self) -> None:
        connect = AsyncMock(side_effect=OSError())
        manager = ConnectionManager(WS_URL, connect=connect, sleep=_block_forever)

        manager.open()
        for _ in range(5):
            await asyncio.sleep(0)
        assert connect.await_count == 1

        await manager.stop()
        await asyncio.sleep(0.01)

        assert connect.await_count == 1
        assert manager.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self) -> None:
        manager = ConnectionManager(WS_URL, connect=AsyncMock(side_effect=OSError()))
        await manager.stop()
        await manager.stop()
        assert manager.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_open_is_idempotent(self) -> None:
        gate = asyncio.Event()

        async def _slow_connect(url: str, **kwargs: object) -> _MockWebSocket:
            await gate.wait()
            return _MockWebSocket([])

        connect = AsyncMock(side_effect=_slow_connect)
        manager = ConnectionManager(WS_URL, connect=connect, sleep=_block_forever)

        manager.open()
        manager.open()
        for _ in range(5):
            await asyncio.sleep(0)

        assert connect.await_count == 1
        assert manager.state is ConnectionState.CONNECTING
        await manager.stop()

    @pytest.mark.asyncio
    async def test_state_listener_sees_transitions(self) -> None:
        states: list[ConnectionState] = []
        manager = ConnectionManager(
            WS_URL,
            connect=AsyncMock(return_value=_MockWebSocket([])),
            sleep=_RecordingSleep(limit=1),
        )
        manager.add_state_listener(states.append)

        manager.open()
        await manager.wait_closed()

        assert states[:3] == [
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.DISCONNECTED,
        ]

    @pytest.mark.asyncio
    async def test_bearer_header_sent(self) -> None:
        connect = AsyncMock(side_effect=OSError())
        manager = ConnectionManager(
            WS_URL, token="tok123", connect=connect, sleep=_RecordingSleep(limit=1)
        )

        manager.open()
        await manager.wait_closed()

        _, kwargs = connect.call_args
        assert kwargs["additional_headers"] == {"Authorization": "Bearer tok123"}

    @pytest.mark.asyncio
    async def test_socket_closed_after_pump(self) -> None:
        ws = _MockWebSocket([])
        manager = ConnectionManager(
            WS_URL, connect=AsyncMock(return_value=ws), sleep=_RecordingSleep(limit=1)
        )

        manager.open()
        await manager.wait_closed()

        ws.close.assert_awaited()


class TestAuthRejection:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_upgrade_stops_reconnecting(self, status: int) -> None:
        connect = AsyncMock(side_effect=_rejected(status))
        sleep = _RecordingSleep(limit=10)
        manager = ConnectionManager(WS_URL, connect=connect, sleep=sleep)

        manager.open()
        await manager.wait_closed()

        assert manager.auth_failed
        assert connect.await_count == 1
        assert sleep.delays == []
        assert manager.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_other_status_retries(self) -> None:
        connect = AsyncMock(side_effect=_rejected(502))
        sleep = _RecordingSleep(limit=2)
        manager = ConnectionManager(WS_URL, connect=connect, sleep=sleep)

        manager.open()
        await manager.wait_closed()

        assert not manager.auth_failed
        assert sleep.delays == [1.0, 2.0]


class TestDispatch:
    @pytest.mark.asyncio
    async def test_frames_published_in_order_and_bad_frames_skipped(self) -> None:
        frames: list[str | bytes] = [
            json.dumps({"type": "telemetry", "payload": {"device_id": "d1", "heading_deg": 1}}),
            "not json",
            json.dumps({"type": "training_live", "device_id": "d1", "sample_count": 2}),
            json.dumps({"type": "telemetry", "payload": {"heading_deg": 1}}),
            b'{"device_id": "d1", "heading": 2}',
        ]
        manager = ConnectionManager(
            WS_URL,
            connect=AsyncMock(return_value=_MockWebSocket(frames)),
            sleep=_RecordingSleep(limit=1),
        )
        received: list[object] = []

        async def _collect(event: object) -> None:
            received.append(event)

        manager.subscribe(_collect)
        manager.open()
        await manager.wait_closed()

        assert [type(e) for e in received] == [
            TelemetryReceived,
            TrainingReceived,
            TelemetryReceived,
        ]
        assert manager.frame_count == 3
        assert manager.discard_count == 2

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_stream(self) -> None:
        frames = [json.dumps({"device_id": "d1", "heading": n}) for n in range(3)]
        manager = ConnectionManager(
            WS_URL,
            connect=AsyncMock(return_value=_MockWebSocket(frames)),
            sleep=_RecordingSleep(limit=1),
        )
        good = AsyncMock()
        manager.subscribe(AsyncMock(side_effect=RuntimeError("boom")))
        manager.subscribe(good)

        manager.open()
        await manager.wait_closed()

        assert good.await_count == 3

    @pytest.mark.asyncio
    async def test_unsubscribed_callback_not_called(self) -> None:
        frames = [json.dumps({"device_id": "d1"})]
        manager = ConnectionManager(
            WS_URL,
            connect=AsyncMock(return_value=_MockWebSocket(frames)),
            sleep=_RecordingSleep(limit=1),
        )
        sub = AsyncMock()
        unsubscribe = manager.subscribe(sub)
        unsubscribe()

        manager.open()
        await manager.wait_closed()

        sub.assert_not_awaited()
        assert manager.frame_count == 1
