"""Tests for keyring credentials and the login/session lifecycle."""

from unittest.mock import MagicMock

import httpx
import keyring
import keyring.errors
import pytest

from envsync.api.client import EnvSyncAPI
from envsync.auth import session as session_mod
from envsync.auth.credentials import CredentialsStore
from envsync.auth.session import Session
from envsync.crypto.envelope import create_passphrase
from envsync.errors import ApiError, NotLoggedInError


@pytest.fixture
def api() -> MagicMock:
    return MagicMock(spec=EnvSyncAPI)


def test_credentials_round_trip(memory_keyring) -> None:
    creds = CredentialsStore()
    assert creds.get_stored() is None
    creds.set_stored("test@example.com", "tok")
    assert creds.get_stored() == ("test@example.com", "tok")
    # ENVSYNC_CONFIG_DIR is set by the autouse fixture, so the test namespace is used
    assert ("EnvSync-Test", "access_token") in memory_keyring
    creds.clear_stored()
    assert creds.get_stored() is None
    creds.clear_stored()


def test_credentials_read_error_means_logged_out(monkeypatch) -> None:
    def broken(service, key):
        raise keyring.errors.KeyringError("locked")

    monkeypatch.setattr(keyring, "get_password", broken)
    assert CredentialsStore().get_stored() is None


def test_session_helpers(session: Session) -> None:
    assert session.username == "test"
    assert session.passphrase() == create_passphrase("test@example.com", "device-123")
    assert "token-abc" not in repr(session)


def test_request_login_code_validates_email(api) -> None:
    with pytest.raises(ValueError):
        session_mod.request_login_code(api, "not-an-email")
    api.send_magic_link.assert_not_called()
    session_mod.request_login_code(api, "test@example.com")
    api.send_magic_link.assert_called_once_with("test@example.com")


def test_login_stores_credentials(api, memory_keyring) -> None:
    api.verify_otp.return_value = {"access_token": "fresh", "email": "test@example.com"}
    creds = CredentialsStore()

    new_session = session_mod.login(api, creds, "test@example.com", " 123456 ")

    api.verify_otp.assert_called_once_with("test@example.com", "123456")
    assert new_session == Session("fresh", "test@example.com", "device-123")
    assert creds.get_stored() == ("test@example.com", "fresh")
    api.set_access_token.assert_called_with("fresh")


def test_load_session(api, memory_keyring) -> None:
    creds = CredentialsStore()
    assert session_mod.load_session(api, creds) is None
    creds.set_stored("test@example.com", "stored")
    loaded = session_mod.load_session(api, creds)
    assert loaded == Session("stored", "test@example.com", "device-123")
    api.set_access_token.assert_called_with("stored")
    api.validate_token.assert_not_called()


def test_validate_session_rejected_clears_credentials(api, memory_keyring, session) -> None:
    creds = CredentialsStore()
    creds.set_stored(session.email, session.access_token)
    api.validate_token.return_value = False

    assert session_mod.validate_session(api, creds, session) is None
    assert creds.get_stored() is None


def test_validate_session_offline_keeps_session(api, memory_keyring, session) -> None:
    creds = CredentialsStore()
    creds.set_stored(session.email, session.access_token)
    api.validate_token.side_effect = httpx.ConnectError("offline")

    assert session_mod.validate_session(api, creds, session) is session
    assert creds.get_stored() is not None


def test_logout_clears_credentials(api, memory_keyring) -> None:
    creds = CredentialsStore()
    creds.set_stored("test@example.com", "tok")
    session_mod.logout(api, creds)
    api.logout.assert_called_once()
    assert creds.get_stored() is None


def test_require_session_raises_when_logged_out(api, memory_keyring) -> None:
    creds = CredentialsStore()
    with pytest.raises(NotLoggedInError):
        session_mod.require_session(api, creds)
    creds.set_stored("test@example.com", "tok")
    assert session_mod.require_session(api, creds).access_token == "tok"


def test_clear_if_unauthorized_only_on_401(api, memory_keyring) -> None:
    creds = CredentialsStore()
    creds.set_stored("test@example.com", "tok")

    assert session_mod.clear_if_unauthorized(api, creds, ApiError("500 boom", status_code=500)) is False
    assert session_mod.clear_if_unauthorized(api, creds, httpx.ConnectError("offline")) is False
    assert session_mod.clear_if_unauthorized(api, creds, None) is False
    assert creds.get_stored() is not None

    assert session_mod.clear_if_unauthorized(api, creds, ApiError("401 expired", status_code=401)) is True
    assert creds.get_stored() is None
    api.set_access_token.assert_called_with(None)
