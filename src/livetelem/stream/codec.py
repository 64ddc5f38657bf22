"""Decode raw stream frames into typed envelopes and domain events.

Inbound frames are JSON text in one of these shapes::

    {"type": "telemetry", "payload": {...}}
    {"type": "telemetry", "payload": {"payload": {...}}}     # relayed
    {"type": "training_live", "device_id": ..., "sample_count": ...}
    {...}                                                    # bare payload

The direct bridge wraps payloads once, the pass-through relay wraps them
again, so a known envelope is unwrapped at most twice.  Decoding never
raises: every failure becomes a :class:`Discard` carrying the reason.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from livetelem.models.telemetry import Telemetry
from livetelem.models.training import TrainingStats
from livetelem.stream.normalizer import Rejection, TelemetryNormalizer

logger = logging.getLogger(__name__)

_MAX_UNWRAP = 2


class FrameKind(StrEnum):
    TELEMETRY = "telemetry"
    TRAINING_LIVE = "training_live"


@dataclass(frozen=True, slots=True)
class Envelope:
    """A structurally valid frame with its payload extracted."""

    kind: FrameKind
    payload: dict[str, Any]
    outer: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Discard:
    """A frame that was dropped.  *stage* is ``"decode"`` or ``"validation"``."""

    reason: str
    stage: str = "decode"


@dataclass(frozen=True, slots=True)
class TelemetryReceived:
    record: Telemetry


@dataclass(frozen=True, slots=True)
class TrainingReceived:
    stats: TrainingStats


StreamEvent = TelemetryReceived | TrainingReceived


def _unwrap(obj: dict[str, Any]) -> dict[str, Any]:
    payload = obj
    for _ in range(_MAX_UNWRAP):
        inner = payload.get("payload")
        if not isinstance(inner, dict):
            break
        payload = inner
    return payload


class FrameCodec:
    """Turns raw text frames into :class:`Envelope` or domain events."""

    def __init__(self, normalizer: TelemetryNormalizer | None = None) -> None:
        self._normalizer = normalizer or TelemetryNormalizer()

    def decode(self, raw: str | bytes) -> Envelope | Discard:
        """Parse *raw* into an :class:`Envelope`, or a :class:`Discard`."""
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                return Discard("frame is not valid UTF-8")

        try:
            obj = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            return Discard(f"invalid JSON: {exc}")

        if not isinstance(obj, dict):
            return Discard(f"expected a JSON object, got {type(obj).__name__}")

        tag = obj.get("type")
        if tag is None:
            return Envelope(kind=FrameKind.TELEMETRY, payload=obj, outer=obj)

        try:
            kind = FrameKind(tag)
        except (ValueError, TypeError):
            return Discard(f"unrecognized frame type {tag!r}")

        return Envelope(kind=kind, payload=_unwrap(obj), outer=obj)

    def to_event(self, raw: str | bytes) -> StreamEvent | Discard:
        """Decode *raw* and validate its payload into a domain event."""
        envelope = self.decode(raw)
        if isinstance(envelope, Discard):
            return envelope

        if envelope.kind is FrameKind.TRAINING_LIVE:
            try:
                stats = TrainingStats.model_validate(envelope.payload)
            except ValidationError as exc:
                logger.debug("Invalid training_live payload", exc_info=True)
                return Discard(
                    f"invalid training_live payload: {exc.error_count()} error(s)",
                    stage="validation",
                )
            return TrainingReceived(stats)

        outcome = self._normalizer.normalize(envelope.payload, envelope=envelope.outer)
        if isinstance(outcome, Rejection):
            return Discard(outcome.reason, stage="validation")
        return TelemetryReceived(outcome)
