from __future__ import annotations

import base64
import hashlib

SHARE_KEY_PREFIX = "share-urls/"
KEY_ENCODINGS = ("hex", "base64")


def sha256_digest(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def encode_digest(digest: bytes, *, encoding: str = "hex", short_length: int = 16) -> str:
    """Render a digest for use in a storage key.

    `hex` keeps the full digest. `base64` keeps the first `short_length`
    characters of the URL-safe rendering: shorter links, higher collision odds.
    """
    if encoding == "hex":
        return digest.hex()
    if encoding == "base64":
        if short_length <= 0:
            raise ValueError("short_length must be > 0")
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")[:short_length]
    raise ValueError(f"unknown key encoding: {encoding}")


def derive_share_key(
    data: bytes,
    *,
    prefix: str = SHARE_KEY_PREFIX,
    encoding: str = "hex",
    short_length: int = 16,
) -> str:
    return f"{prefix}{encode_digest(sha256_digest(data), encoding=encoding, short_length=short_length)}"
