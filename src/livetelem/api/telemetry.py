"""Telemetry, training and device endpoints built on top of LiveApiClient."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from livetelem.api.errors import CollaboratorError
from livetelem.models.telemetry import Device, Telemetry
from livetelem.models.training import TrainingStats
from livetelem.stream.normalizer import Rejection, TelemetryNormalizer

if TYPE_CHECKING:
    from livetelem.api.client import LiveApiClient

logger = logging.getLogger(__name__)


def _expect_rows(data: Any, path: str) -> list[dict[str, Any]]:
    if not isinstance(data, list):
        raise CollaboratorError(f"Expected a list of rows from {path}, got {type(data).__name__}")
    return [row for row in data if isinstance(row, dict)]


class TelemetryAPI:
    """Telemetry-related REST operations (composition over LiveApiClient)."""

    def __init__(
        self,
        client: LiveApiClient,
        normalizer: TelemetryNormalizer | None = None,
    ) -> None:
        self._client = client
        self._normalizer = normalizer or TelemetryNormalizer()

    def _normalize_rows(self, rows: list[dict[str, Any]]) -> list[Telemetry]:
        records: list[Telemetry] = []
        for row in rows:
            outcome = self._normalizer.normalize(row)
            if isinstance(outcome, Rejection):
                logger.debug("Skipping polled row: %s", outcome.reason)
                continue
            records.append(outcome)
        return records

    async def latest(self, device_id: str, *, limit: int = 1) -> list[Telemetry]:
        """Fetch the newest rows for *device_id*, newest first.

        Rows that fail normalization are skipped, so the first element is the
        newest compatible row.
        """
        data = await self._client.get(
            "/telemetry", params={"device_id": device_id, "limit": limit}
        )
        return self._normalize_rows(_expect_rows(data, "/telemetry"))

    async def history(self) -> list[Telemetry]:
        """Fetch the account-wide telemetry history."""
        data = await self._client.get("/api/telemetry/history")
        return self._normalize_rows(_expect_rows(data, "/api/telemetry/history"))

    async def training_live(self, device_id: str, *, window: int = 120) -> TrainingStats:
        """Fetch computed training statistics for *device_id*.

        The backend stores device ids lowercased.
        """
        data = await self._client.get(
            "/api/training/live",
            params={"device_id": device_id.lower(), "window": window},
        )
        try:
            return TrainingStats.model_validate(data)
        except ValidationError as exc:
            raise CollaboratorError(
                f"Invalid training/live response: {exc.error_count()} error(s)"
            ) from exc

    async def devices(self) -> list[Device]:
        """List the devices registered to the account."""
        data = await self._client.get("/api/devices")
        return [
            Device(
                id=str(row["device_id"]),
                name=str(row.get("name") or row["device_id"]),
                registered_at=row.get("registered_at"),
            )
            for row in _expect_rows(data, "/api/devices")
            if row.get("device_id")
        ]
