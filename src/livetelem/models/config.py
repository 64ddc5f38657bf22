from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Application-wide settings populated from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LIVETELEM_",
        extra="ignore",
    )

    ws_url: str | None = None
    api_url: str | None = None
    access_token: str | None = None
    profile: str = "default"
    device_id: str | None = None
    secure_origin: bool = False
    """Rewrite ``ws://`` to ``wss://`` as if hosted on an encrypted origin."""

    max_history: int = Field(default=25, ge=1)
    min_samples: int = Field(default=6, ge=1)
    calibration_timeout: float = Field(default=12.0, gt=0)
    lock_flash_seconds: float = Field(default=1.5, ge=0)
    backoff_floor: float = Field(default=1.0, gt=0)
    backoff_ceiling: float = Field(default=15.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    training_window: int = Field(default=120, ge=1)
