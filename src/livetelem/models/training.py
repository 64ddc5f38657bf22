"""Computed training statistics pushed over the stream (``training_live``).

The quantities themselves (orientation, stability, drift) are computed
upstream; this module only models the message.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DriftDirection(StrEnum):
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"
    UNKNOWN = "unknown"


class Orientation(BaseModel):
    model_config = ConfigDict(frozen=True)

    pitch_deg: float | None = None
    roll_deg: float | None = None
    yaw_deg: float | None = None


class Movement(BaseModel):
    model_config = ConfigDict(frozen=True)

    stability_score: float | None = None
    micro_move_rate: float | None = None
    gyro_mean: float | None = None
    gyro_std: float | None = None
    drift_deg: float | None = None
    drift_deg_per_s: float | None = None
    drift_dir: DriftDirection = DriftDirection.UNKNOWN

    @field_validator("drift_dir", mode="before")
    @classmethod
    def _unknown_drift(cls, value: Any) -> Any:
        if value is None:
            return DriftDirection.UNKNOWN
        try:
            return DriftDirection(value)
        except ValueError:
            return DriftDirection.UNKNOWN


class TrainingStats(BaseModel):
    """Per-device statistics over a sliding sample window."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    device_id: str = Field(min_length=1)
    sample_count: int = Field(default=0, ge=0)
    window_s: float | None = None
    orientation: Orientation | None = None
    movement: Movement | None = None
    note: str | None = None

    def is_complete(self, min_samples: int) -> bool:
        """Return ``True`` if these stats are trustworthy enough to display."""
        return (
            self.sample_count >= min_samples
            and self.orientation is not None
            and self.movement is not None
        )
