"""Tests for AppSettings environment loading."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from livetelem.models.config import AppSettings


class TestDefaults:
    def test_defaults(self) -> None:
        settings = AppSettings(_env_file=None)
        assert settings.ws_url is None
        assert settings.profile == "default"
        assert settings.max_history == 25
        assert settings.min_samples == 6
        assert settings.calibration_timeout == 12.0
        assert settings.lock_flash_seconds == 1.5
        assert settings.backoff_floor == 1.0
        assert settings.backoff_ceiling == 15.0
        assert settings.poll_interval == 1.0
        assert settings.training_window == 120
        assert settings.secure_origin is False


class TestEnvironment:
    def test_reads_prefixed_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIVETELEM_WS_URL", "ws://dash.example.com/ws")
        monkeypatch.setenv("LIVETELEM_ACCESS_TOKEN", "tok")
        monkeypatch.setenv("LIVETELEM_SECURE_ORIGIN", "true")
        monkeypatch.setenv("LIVETELEM_MAX_HISTORY", "10")
        settings = AppSettings(_env_file=None)
        assert settings.ws_url == "ws://dash.example.com/ws"
        assert settings.access_token == "tok"
        assert settings.secure_origin is True
        assert settings.max_history == 10

    def test_reads_dotenv(self, tmp_path: object, monkeypatch: pytest.MonkeyPatch) -> None:
        from pathlib import Path

        env_file = Path(str(tmp_path)) / ".env"
        env_file.write_text("LIVETELEM_API_URL=https://dash.example.com\n")
        settings = AppSettings(_env_file=env_file)
        assert settings.api_url == "https://dash.example.com"

    def test_rejects_invalid_history_size(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIVETELEM_MAX_HISTORY", "0")
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None)

    def test_unprefixed_vars_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WS_URL", "ws://wrong")
        assert AppSettings(_env_file=None).ws_url is None
