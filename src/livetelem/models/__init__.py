from __future__ import annotations

from livetelem.models.config import AppSettings
from livetelem.models.telemetry import Device, Telemetry, Vector3
from livetelem.models.training import (
    DriftDirection,
    Movement,
    Orientation,
    TrainingStats,
)

__all__ = [
    # config
    "AppSettings",
    # telemetry
    "Device",
    "Telemetry",
    "Vector3",
    # training
    "DriftDirection",
    "Movement",
    "Orientation",
    "TrainingStats",
]
