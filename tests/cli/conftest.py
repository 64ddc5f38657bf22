"""Shared fixtures for CLI execution tests."""

from __future__ import annotations

import pytest


@pytest.fixture()
def cli_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Point the CLI at a fake backend with a token from the environment."""
    env = {
        "LIVETELEM_ACCESS_TOKEN": "test-token-123",
        "LIVETELEM_API_URL": "https://dash.example.com",
        "LIVETELEM_WS_URL": "ws://dash.example.com/ws",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
