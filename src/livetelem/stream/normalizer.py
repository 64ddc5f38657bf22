"""Map arbitrary telemetry payloads onto the canonical :class:`Telemetry` record.

Upstream producers disagree on field names (``heading_deg`` vs ``heading``,
flat ``accel_x`` vs nested ``accelerometer.x``, ``speed_kmh`` vs
``speed``).  Every canonical field therefore has an ordered tuple of
candidate source paths in :data:`TELEMETRY_FIELD_TABLE`; the first
candidate that is present and not ``None`` wins.

Candidate path syntax:

* ``"heading_deg"`` -- a top-level payload key.
* ``"accelerometer.x"`` -- a dotted path into nested payload objects.
* ``"@received_at"`` -- a key on the outer envelope rather than the payload.

Unit-qualified keys (``speed_kmh``, ``altitude_m``, ``pressure_hpa``,
``direction_deg``) are listed before their short aliases.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from livetelem.models.telemetry import Telemetry, Vector3

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_MISSING: Any = object()


def _identity(value: Any) -> Any:
    return value


def _to_float(value: Any) -> float | None:
    """Coerce numbers and numeric strings; anything else is ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return result if math.isfinite(result) else None


def _to_timestamp(value: Any) -> int | float | str:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float, str)):
        return value
    return 0


def _to_text_or_number(value: Any) -> str | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return value
    return None


@dataclass(frozen=True)
class FieldRule:
    """Ordered candidate paths and a transform for one canonical field."""

    candidates: tuple[str, ...]
    transform: Callable[[Any], Any] = _to_float
    default: Any = None


def _axis_rules(group: str, nested: str) -> dict[str, FieldRule]:
    return {
        f"{group}.{axis}": FieldRule((f"{group}_{axis}", f"{nested}.{axis}", f"{group}.{axis}"))
        for axis in "xyz"
    }


# ---------------------------------------------------------------------------
# Master resolution table: canonical field -> rule
#
# Axis groups use "<group>.<axis>" names and are folded into Vector3 values.
# ---------------------------------------------------------------------------

TELEMETRY_FIELD_TABLE: dict[str, FieldRule] = {
    "device_id": FieldRule(("device_id", "deviceId"), _identity),
    "device_timestamp": FieldRule(
        ("device_ts", "device_timestamp", "timestamp", "ts"), _to_timestamp, default=0
    ),
    "heading_degrees": FieldRule(("heading_deg", "heading_degrees", "heading"), default=0.0),
    "temperature_c": FieldRule(("temp_c", "temperature_c", "temp", "temperature")),
    "battery_percent": FieldRule(("battery_percent", "battery")),
    **_axis_rules("accel", "accelerometer"),
    **_axis_rules("gyro", "gyroscope"),
    **_axis_rules("mag", "magnetometer"),
    "latitude": FieldRule(("lat", "latitude", "location.latitude")),
    "longitude": FieldRule(("lon", "longitude", "location.longitude")),
    "speed_kmh": FieldRule(("speed_kmh", "speed")),
    "altitude_m": FieldRule(("altitude_m", "altitude")),
    "pressure_hpa": FieldRule(("pressure_hpa", "pressure")),
    "direction_degrees": FieldRule(("direction_deg", "direction_degrees", "direction")),
    "created_at": FieldRule(("created_at", "@created_at"), _to_text_or_number),
    "received_at": FieldRule(("@received_at", "received_at"), _to_text_or_number),
}

_VECTOR_GROUPS = ("accel", "gyro", "mag")


@dataclass(frozen=True, slots=True)
class Rejection:
    """A payload that could not be turned into a valid record."""

    reason: str


def _lookup(source: Mapping[str, Any] | None, path: str) -> Any:
    node: Any = source
    for part in path.split("."):
        if not isinstance(node, Mapping):
            return _MISSING
        node = node.get(part, _MISSING)
        if node is _MISSING or node is None:
            return _MISSING
    return node


class TelemetryNormalizer:
    """Resolves payload fields through an explicit resolution table.

    Usage::

        normalizer = TelemetryNormalizer()
        outcome = normalizer.normalize({"device_id": "d1", "heading": 12.5})
        if isinstance(outcome, Rejection):
            ...
    """

    def __init__(self, table: dict[str, FieldRule] | None = None) -> None:
        self._table = table or TELEMETRY_FIELD_TABLE

    def resolve(
        self,
        field: str,
        payload: Mapping[str, Any],
        envelope: Mapping[str, Any] | None = None,
    ) -> Any:
        """Return the transformed value of *field*, or the rule's default."""
        rule = self._table[field]
        for candidate in rule.candidates:
            if candidate.startswith("@"):
                raw = _lookup(envelope, candidate[1:])
            else:
                raw = _lookup(payload, candidate)
            if raw is not _MISSING:
                return rule.transform(raw)
        return rule.default

    def normalize(
        self,
        payload: Any,
        *,
        envelope: Mapping[str, Any] | None = None,
    ) -> Telemetry | Rejection:
        """Build a :class:`Telemetry` record from *payload*, or reject it."""
        if not isinstance(payload, Mapping):
            return Rejection(f"payload is {type(payload).__name__}, not an object")

        values = {name: self.resolve(name, payload, envelope) for name in self._table}

        device_id = values.pop("device_id")
        if not isinstance(device_id, str) or not device_id:
            return Rejection("missing or empty device_id")
        if values["heading_degrees"] is None:
            return Rejection(f"heading for {device_id} is not a finite number")

        for group in _VECTOR_GROUPS:
            axes = {axis: values.pop(f"{group}.{axis}") for axis in "xyz"}
            values[group] = Vector3(**axes) if any(v is not None for v in axes.values()) else None

        try:
            return Telemetry(device_id=device_id, **values)
        except ValidationError as exc:
            logger.debug("Telemetry validation failed for %s", device_id, exc_info=True)
            return Rejection(f"invalid record for {device_id}: {exc.error_count()} error(s)")

    @property
    def fields(self) -> frozenset[str]:
        """Return the set of canonical field names this normalizer resolves."""
        return frozenset(self._table.keys())


_default = TelemetryNormalizer()


def normalize(
    payload: Any,
    *,
    envelope: Mapping[str, Any] | None = None,
) -> Telemetry | Rejection:
    """Normalize *payload* with the default resolution table."""
    return _default.normalize(payload, envelope=envelope)
