"""Canonical telemetry record produced by the normalizer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Vector3(BaseModel):
    """Three-axis sensor sample.  Each axis is optional."""

    model_config = ConfigDict(frozen=True)

    x: float | None = None
    y: float | None = None
    z: float | None = None


class Telemetry(BaseModel):
    """Normalized snapshot of one device sample.

    ``device_id`` is always a non-empty string and ``heading_degrees`` is
    always finite; anything else is rejected before a record is built.
    Records are immutable once created.
    """

    model_config = ConfigDict(frozen=True)

    device_id: str = Field(min_length=1)
    device_timestamp: int | float | str = 0
    heading_degrees: float = Field(default=0.0, allow_inf_nan=False)
    temperature_c: float | None = None
    battery_percent: float | None = None
    accel: Vector3 | None = None
    gyro: Vector3 | None = None
    mag: Vector3 | None = None
    latitude: float | None = None
    longitude: float | None = None
    speed_kmh: float | None = None
    altitude_m: float | None = None
    pressure_hpa: float | None = None
    direction_degrees: float | None = None
    created_at: str | float | None = None
    received_at: str | float | None = None

    @property
    def dedupe_key(self) -> tuple[str, int | float | str]:
        """Key used to collapse overlapping polled rows."""
        return (self.device_id, self.device_timestamp)


class Device(BaseModel):
    """A registered device as listed by the devices endpoint."""

    id: str
    name: str
    registered_at: str | None = None
