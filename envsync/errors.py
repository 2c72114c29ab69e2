"""Exception types raised by the EnvSync client.

Each kind calls for a different remedy, so callers catch them separately:
a FormatError means the stored data or protocol does not match this client,
a DecryptionError means the credentials (email/device) are wrong or the data
was tampered with, an IntegrityError means the decrypted content does not
match its recorded hash, and a NotFoundError means the remote file or version
is absent.
"""

from typing import Optional


class EnvSyncError(Exception):
    """Base class for all EnvSync errors."""


class FormatError(EnvSyncError):
    """Envelope is malformed or uses an unsupported version."""


class DecryptionError(EnvSyncError):
    """Authentication failed: wrong passphrase/key or corrupted ciphertext."""


class IntegrityError(EnvSyncError):
    """Decrypted content does not match the hash stored with it."""


class NotFoundError(EnvSyncError):
    """Remote file or version does not exist."""


class NotLoggedInError(EnvSyncError):
    """No valid session; the user has to log in first."""


class ApiError(EnvSyncError):
    """Service answered with an unexpected HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DuplicateFileNameError(EnvSyncError):
    """Several workspace files share one remote name."""
