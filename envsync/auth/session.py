"""Signed-in session: access token, user email and device id in one object.

A Session is created on login (or restored from the keyring), passed to the
sync engine and history manager, and cleared on logout or when the service
rejects the token.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from envsync.api.client import EnvSyncAPI
from envsync.auth.credentials import CredentialsStore
from envsync.crypto.envelope import create_passphrase
from envsync.device import resolve_device_id
from envsync.errors import ApiError, NotLoggedInError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Everything needed to talk to the service and derive encryption keys."""

    access_token: str
    email: str
    device_id: str

    @property
    def username(self) -> str:
        return self.email.split("@", 1)[0]

    def passphrase(self) -> str:
        return create_passphrase(self.email, self.device_id)

    def __repr__(self) -> str:
        return f"Session(email={self.email!r}, device_id={self.device_id!r})"


def request_login_code(api: EnvSyncAPI, email: str) -> None:
    """Ask the service to email a one-time login code."""
    if "@" not in email:
        raise ValueError("Please enter a valid email address")
    api.send_magic_link(email)
    log.info("Login code requested")


def login(
    api: EnvSyncAPI,
    creds: CredentialsStore,
    email: str,
    code: str,
    device_id: Optional[str] = None,
) -> Session:
    """Verify the one-time code, persist the token and return the new session."""
    data = api.verify_otp(email, code.strip())
    session = Session(
        access_token=data["access_token"],
        email=data.get("email") or email,
        device_id=device_id or resolve_device_id(),
    )
    creds.set_stored(session.email, session.access_token)
    api.set_access_token(session.access_token)
    log.info("Login successful for %s", session.username)
    return session


def load_session(
    api: EnvSyncAPI,
    creds: CredentialsStore,
    device_id: Optional[str] = None,
) -> Optional[Session]:
    """Session from stored credentials, without contacting the service. None if not logged in."""
    stored = creds.get_stored()
    if not stored:
        log.debug("No stored credentials")
        return None
    email, token = stored
    api.set_access_token(token)
    return Session(access_token=token, email=email, device_id=device_id or resolve_device_id())


def require_session(
    api: EnvSyncAPI,
    creds: CredentialsStore,
    device_id: Optional[str] = None,
) -> Session:
    """Like load_session, but raises NotLoggedInError when nobody is logged in."""
    session = load_session(api, creds, device_id)
    if session is None:
        raise NotLoggedInError("Please login first (envsync login).")
    return session


def validate_session(api: EnvSyncAPI, creds: CredentialsStore, session: Session) -> Optional[Session]:
    """
    Check the token with the service. A rejected token clears the stored
    credentials and returns None; a network failure keeps the session (the
    user may simply be offline).
    """
    try:
        valid = api.validate_token(session.access_token)
    except httpx.HTTPError as e:
        log.warning("Could not validate session: %s", e)
        return session
    if valid:
        return session
    log.info("Stored session rejected by service; clearing credentials")
    creds.clear_stored()
    api.set_access_token(None)
    return None


def clear_if_unauthorized(api: EnvSyncAPI, creds: CredentialsStore, error: Optional[BaseException]) -> bool:
    """Forget the stored session when error is a 401 from the service. True if it was."""
    if not isinstance(error, ApiError) or error.status_code != 401:
        return False
    log.info("Access token rejected by service; clearing credentials")
    creds.clear_stored()
    api.set_access_token(None)
    return True


def logout(api: EnvSyncAPI, creds: CredentialsStore) -> None:
    """Revoke the token server-side (best effort) and clear local credentials."""
    api.logout()
    creds.clear_stored()
    log.info("Logged out")
