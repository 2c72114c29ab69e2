"""SHA-256 fingerprint of file content."""

import hashlib
from typing import Union


def compute_hash(content: Union[str, bytes]) -> str:
    """Hex SHA-256 of content. Text is hashed as its UTF-8 bytes."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()
