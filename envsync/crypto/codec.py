"""Pick the codec for a stored envelope and derive the matching key."""

import enum
import logging

from envsync.crypto import envelope, legacy
from envsync.crypto.hashing import compute_hash

log = logging.getLogger(__name__)


class EnvelopeFormat(enum.Enum):
    """Storage formats a remote envelope can be in."""

    CURRENT = "current"
    LEGACY = "legacy"


def detect(content: str) -> EnvelopeFormat:
    """CURRENT if the string is structurally a current envelope, else LEGACY."""
    if envelope.is_current_format(content):
        return EnvelopeFormat.CURRENT
    return EnvelopeFormat.LEGACY


def create_legacy_key(user_email: str, device_id: str) -> str:
    """Key string old clients used: hex SHA-256 of "<email>-<deviceId>-envsync-key"."""
    return compute_hash(f"{user_email}-{device_id}-envsync-key")


def decrypt_envelope(content: str, user_email: str, device_id: str) -> bytes:
    """
    Decrypt remote content in either format with keys derived from email and
    device id. Returns the plaintext bytes exactly as they were pushed.
    """
    fmt = detect(content)
    log.debug("Decrypting %s envelope (%d chars)", fmt.value, len(content))
    if fmt is EnvelopeFormat.CURRENT:
        return envelope.decrypt_bytes(content, envelope.create_passphrase(user_email, device_id))
    # legacy clients only ever encrypted text, so non-UTF-8 output means a wrong key
    return legacy.decrypt(content, create_legacy_key(user_email, device_id)).encode("utf-8")
