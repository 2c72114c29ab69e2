"""Read-only support for the legacy envelope format.

Older clients stored content as an OpenSSL-compatible blob: base64 of
"Salted__" + 8-byte salt + AES-256-CBC ciphertext, with key and IV derived by
EVP_BytesToKey (MD5, one round). Only decryption is supported; everything
new is written in the current format.
"""

import base64
import binascii
import hashlib
import logging
from typing import Optional, Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from envsync.errors import DecryptionError, FormatError

log = logging.getLogger(__name__)

SALTED_PREFIX = b"Salted__"
SALT_LENGTH = 8
KEY_LENGTH = 32
IV_LENGTH = 16
MIN_PAYLOAD_LENGTH = 16


def evp_bytes_to_key(
    password: bytes,
    salt: Optional[bytes],
    key_length: int = KEY_LENGTH,
    iv_length: int = IV_LENGTH,
) -> Tuple[bytes, bytes]:
    """
    OpenSSL EVP_BytesToKey with MD5 and a single iteration.
    Each block is MD5(previous block + password + salt); blocks are concatenated
    until key_length + iv_length bytes are available.
    """
    derived = b""
    block = b""
    while len(derived) < key_length + iv_length:
        md5 = hashlib.md5()
        md5.update(block)
        md5.update(password)
        if salt:
            md5.update(salt)
        block = md5.digest()
        derived += block
    return derived[:key_length], derived[key_length:key_length + iv_length]


def split_payload(raw: bytes) -> Tuple[Optional[bytes], bytes]:
    """Return (salt, ciphertext). Salt is None when the blob has no "Salted__" header."""
    if raw[:len(SALTED_PREFIX)] == SALTED_PREFIX:
        start = len(SALTED_PREFIX)
        return raw[start:start + SALT_LENGTH], raw[start + SALT_LENGTH:]
    return None, raw


def decrypt(legacy_blob: str, legacy_key: str) -> str:
    """
    Decrypt a legacy blob with a pre-derived legacy key string.

    Raises FormatError when the blob is not base64 or is too short, and
    DecryptionError when the key is wrong or the ciphertext is damaged.
    """
    try:
        raw = base64.b64decode(legacy_blob.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"Invalid legacy payload: {e}") from e
    if len(raw) < MIN_PAYLOAD_LENGTH:
        raise FormatError("Invalid legacy payload: too short")

    salt, ciphertext = split_payload(raw)
    key, iv = evp_bytes_to_key(legacy_key.encode("utf-8"), salt)

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        log.debug("Legacy CBC decryption failed")
        raise DecryptionError(
            "Decryption failed: legacy data may be corrupted or encrypted with different credentials"
        ) from e
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decryption failed: legacy content is not valid UTF-8") from e
