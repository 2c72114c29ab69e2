"""Shared fixtures: isolated config dir, fixed device id, in-memory keyring."""

from pathlib import Path
from typing import Dict, Tuple

import pytest

from envsync.auth.session import Session


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path: Path) -> Path:
    """Keep config, keyring namespace and device id away from the real user profile."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("ENVSYNC_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("ENVSYNC_DEVICE_ID", "device-123")
    monkeypatch.delenv("ENVSYNC_API_URL", raising=False)
    return config_dir


@pytest.fixture
def memory_keyring(monkeypatch) -> Dict[Tuple[str, str], str]:
    """Replace keyring get/set/delete with a dict."""
    import keyring
    import keyring.errors

    store: Dict[Tuple[str, str], str] = {}

    def get_password(service: str, key: str):
        return store.get((service, key))

    def set_password(service: str, key: str, value: str) -> None:
        store[(service, key)] = value

    def delete_password(service: str, key: str) -> None:
        if (service, key) not in store:
            raise keyring.errors.PasswordDeleteError("not found")
        del store[(service, key)]

    monkeypatch.setattr(keyring, "get_password", get_password)
    monkeypatch.setattr(keyring, "set_password", set_password)
    monkeypatch.setattr(keyring, "delete_password", delete_password)
    return store


@pytest.fixture
def session() -> Session:
    return Session(access_token="token-abc", email="test@example.com", device_id="device-123")
