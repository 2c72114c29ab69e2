"""Content hashing and envelope encryption (current and legacy formats)."""

from envsync.crypto.codec import EnvelopeFormat, create_legacy_key, decrypt_envelope, detect
from envsync.crypto.envelope import create_passphrase, decrypt, encrypt, is_current_format
from envsync.crypto.hashing import compute_hash

__all__ = [
    "EnvelopeFormat",
    "compute_hash",
    "create_legacy_key",
    "create_passphrase",
    "decrypt",
    "decrypt_envelope",
    "detect",
    "encrypt",
    "is_current_format",
]
