"""Keyring-backed storage of the access token and the signed-in email."""

import logging
import os
from typing import Optional, Tuple

import keyring
import keyring.errors

log = logging.getLogger(__name__)

KEY_EMAIL = "email"
KEY_ACCESS_TOKEN = "access_token"


def _keyring_service_name() -> str:
    """Use a separate keyring namespace when ENVSYNC_CONFIG_DIR is set (tests, sandboxes)."""
    if os.environ.get("ENVSYNC_CONFIG_DIR", "").strip():
        return "EnvSync-Test"
    return "EnvSync"


class CredentialsStore:
    """
    Stores email and access token in the OS keyring (Windows Credential Manager,
    macOS Keychain, Linux Secret Service). Nothing is written in plain text.
    """

    def get_stored(self) -> Optional[Tuple[str, str]]:
        """
        Return (email, access_token) if stored, else None.
        A keyring read error (e.g. locked or corrupted backend) is logged and
        treated as "not logged in" so the user can log in again.
        """
        try:
            service = _keyring_service_name()
            email = keyring.get_password(service, KEY_EMAIL)
            token = keyring.get_password(service, KEY_ACCESS_TOKEN)
        except keyring.errors.KeyringError as e:
            log.warning("Could not read stored credentials: %s", e)
            return None
        if email and token:
            return (email, token)
        return None

    def set_stored(self, email: str, access_token: str) -> None:
        """Store email and access token in keyring."""
        service = _keyring_service_name()
        keyring.set_password(service, KEY_EMAIL, email)
        keyring.set_password(service, KEY_ACCESS_TOKEN, access_token)

    def clear_stored(self) -> None:
        """Remove stored credentials. Missing entries are fine."""
        service = _keyring_service_name()
        for key in (KEY_EMAIL, KEY_ACCESS_TOKEN):
            try:
                keyring.delete_password(service, key)
            except keyring.errors.PasswordDeleteError:
                log.debug("No %s entry to delete", key)
