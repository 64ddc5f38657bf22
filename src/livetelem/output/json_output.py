from __future__ import annotations

import dataclasses
import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


def _serialize(obj: Any) -> Any:
    """Reduce *obj* to plain JSON types.

    * Pydantic models dump in JSON mode and leave out ``None`` fields.
    * Dataclass instances (calibration status, session updates) are
      converted field by field.
    * Enums become their value; lists and tuples are recursed element-wise.
    * Anything else passes through; ``json.dumps(default=str)`` stringifies it.
    """
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", exclude_none=True)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _serialize(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [_serialize(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _serialize(value) for key, value in obj.items()}
    return obj


def format_json_response(*, data: Any, command: str) -> str:
    """Wrap *data* in the success envelope, pretty-printed::

        {
          "ok": true,
          "command": "<command>",
          "data": <payload>,
          "timestamp": "<UTC ISO-8601>"
        }
    """
    envelope: dict[str, Any] = {
        "ok": True,
        "command": command,
        "data": _serialize(data),
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return json.dumps(envelope, indent=2, default=str)


def format_json_line(*, data: Any, command: str) -> str:
    """Single-line variant of :func:`format_json_response` for streamed output."""
    envelope: dict[str, Any] = {
        "ok": True,
        "command": command,
        "data": _serialize(data),
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return json.dumps(envelope, default=str)


def format_json_error(
    *,
    code: str,
    message: str,
    command: str,
    **extra: Any,
) -> str:
    """Wrap an error in the failure envelope.

    ``"ok"`` is ``false`` and the payload sits under ``"error"`` as
    ``{"code": ..., "message": ..., **extra}``.
    """
    error_body: dict[str, Any] = {"code": code, "message": message, **extra}
    envelope: dict[str, Any] = {
        "ok": False,
        "command": command,
        "error": error_body,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return json.dumps(envelope, indent=2, default=str)
