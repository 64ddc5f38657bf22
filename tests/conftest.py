"""Shared fixtures: isolated environment and an in-memory keyring."""

from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: object) -> None:
    """Drop LIVETELEM_* variables and run from a directory without a .env file."""
    for key in list(os.environ):
        if key.startswith("LIVETELEM_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> dict[tuple[str, str], str]:
    """Replace keyring calls used by TokenStore with a dict."""
    from keyring.errors import PasswordDeleteError

    store: dict[tuple[str, str], str] = {}

    def _get(service: str, key: str) -> str | None:
        return store.get((service, key))

    def _set(service: str, key: str, value: str) -> None:
        store[(service, key)] = value

    def _delete(service: str, key: str) -> None:
        if (service, key) not in store:
            raise PasswordDeleteError("not found")
        del store[(service, key)]

    monkeypatch.setattr("livetelem.auth.token_store.keyring.get_password", _get)
    monkeypatch.setattr("livetelem.auth.token_store.keyring.set_password", _set)
    monkeypatch.setattr("livetelem.auth.token_store.keyring.delete_password", _delete)
    return store
