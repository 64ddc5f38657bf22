"""Live telemetry ingestion: stream connection, decoding, history and calibration."""

from __future__ import annotations

from livetelem.stream.calibration import (
    CalibrationPhase,
    CalibrationStateMachine,
    CalibrationStatus,
)
from livetelem.stream.codec import (
    Discard,
    FrameCodec,
    FrameKind,
    TelemetryReceived,
    TrainingReceived,
)
from livetelem.stream.connection import ConnectionManager, ConnectionState, secure_url
from livetelem.stream.fanout import EventFanout
from livetelem.stream.history import MAX_HISTORY, HistoryBuffer
from livetelem.stream.normalizer import Rejection, TelemetryNormalizer, normalize
from livetelem.stream.poller import FallbackPoller
from livetelem.stream.session import LiveSession, SessionUpdate

__all__ = [
    "MAX_HISTORY",
    "CalibrationPhase",
    "CalibrationStateMachine",
    "CalibrationStatus",
    "ConnectionManager",
    "ConnectionState",
    "Discard",
    "EventFanout",
    "FallbackPoller",
    "FrameCodec",
    "FrameKind",
    "HistoryBuffer",
    "LiveSession",
    "Rejection",
    "SessionUpdate",
    "TelemetryNormalizer",
    "TelemetryReceived",
    "TrainingReceived",
    "normalize",
    "secure_url",
]
