"""Current envelope format: PBKDF2-SHA256 key derivation + AES-256-GCM.

An envelope is base64(JSON) with hex fields:
    {"version": 1, "salt": ..., "iv": ..., "ciphertext": ..., "tag": ...}
Salt and nonce are random per call, so encrypting the same content twice
never yields the same envelope.
"""

import base64
import json
import logging
import os
from typing import Any, Dict, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from envsync.errors import DecryptionError, FormatError

log = logging.getLogger(__name__)

CURRENT_VERSION = 1
KEY_LENGTH = 32
IV_LENGTH = 12
SALT_LENGTH = 16
TAG_LENGTH = 16
PBKDF2_ITERATIONS = 100_000

_BYTE_FIELDS = ("salt", "iv", "ciphertext", "tag")


def create_passphrase(user_email: str, device_id: str) -> str:
    """Passphrase for the current format. Never stored; rebuilt from email and device id."""
    return f"{user_email}:{device_id}:envsync-v{CURRENT_VERSION}"


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt(plaintext: Union[str, bytes], passphrase: str) -> str:
    """Encrypt plaintext into an opaque envelope string."""
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(passphrase, salt)
    # AESGCM appends the 16-byte tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    payload = {
        "version": CURRENT_VERSION,
        "salt": salt.hex(),
        "iv": iv.hex(),
        "ciphertext": sealed[:-TAG_LENGTH].hex(),
        "tag": sealed[-TAG_LENGTH:].hex(),
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _load_payload(envelope: str) -> Any:
    """base64 -> JSON. Raises ValueError (incl. binascii/JSON/Unicode errors) on bad input."""
    if not isinstance(envelope, str):
        raise ValueError("envelope must be a string")
    raw = base64.b64decode(envelope.strip(), validate=True)
    return json.loads(raw.decode("utf-8"))


def _has_envelope_shape(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    version = payload.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        return False
    return all(isinstance(payload.get(field), str) for field in _BYTE_FIELDS)


def is_current_format(envelope: str) -> bool:
    """
    Structural check: valid base64 of a JSON object with version and the four hex fields.
    Never decrypts and never raises.
    """
    try:
        payload = _load_payload(envelope)
    except (ValueError, TypeError):
        return False
    return _has_envelope_shape(payload)


def _parse_envelope(envelope: str) -> Dict[str, Any]:
    try:
        payload = _load_payload(envelope)
    except (ValueError, TypeError) as e:
        raise FormatError(f"Envelope is not base64-encoded JSON: {e}") from e
    if not _has_envelope_shape(payload):
        raise FormatError("Envelope is missing required fields")
    if payload["version"] != CURRENT_VERSION:
        raise FormatError(f"Unsupported encryption version: {payload['version']}")
    try:
        fields = {name: bytes.fromhex(payload[name]) for name in _BYTE_FIELDS}
    except ValueError as e:
        raise FormatError(f"Envelope field is not valid hex: {e}") from e
    if len(fields["tag"]) != TAG_LENGTH:
        raise FormatError(f"Authentication tag must be {TAG_LENGTH} bytes")
    if len(fields["iv"]) != IV_LENGTH:
        raise FormatError(f"IV must be {IV_LENGTH} bytes")
    return fields


def decrypt_bytes(envelope: str, passphrase: str) -> bytes:
    """Decrypt an envelope and return the raw plaintext bytes."""
    fields = _parse_envelope(envelope)
    key = _derive_key(passphrase, fields["salt"])
    try:
        return AESGCM(key).decrypt(fields["iv"], fields["ciphertext"] + fields["tag"], None)
    except InvalidTag as e:
        log.debug("AES-GCM authentication failed")
        raise DecryptionError(
            "Decryption failed: data may be corrupted or encrypted with different credentials"
        ) from e


def decrypt(envelope: str, passphrase: str) -> str:
    """
    Decrypt an envelope produced by encrypt().

    Raises FormatError for malformed envelopes or unknown versions, and
    DecryptionError when authentication fails (wrong passphrase or tampering).
    Content that is not UTF-8 text raises UnicodeDecodeError; use
    decrypt_bytes for arbitrary file content.
    """
    return decrypt_bytes(envelope, passphrase).decode("utf-8")
