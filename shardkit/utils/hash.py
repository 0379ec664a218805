from __future__ import annotations

import hashlib

from .bytes import BytesLike, ensure_bytes, to_hex


def sha3_256(data: BytesLike) -> bytes:
    """Return SHA3-256 digest of *data* (bytes). Used for message hashes and addresses."""
    return hashlib.sha3_256(ensure_bytes(data)).digest()


def sha3_256_hex(data: BytesLike, *, prefix: bool = True) -> str:
    """Return hex string of SHA3-256 digest (0x-prefixed by default)."""
    return to_hex(sha3_256(data), prefix=prefix)


__all__ = ["sha3_256", "sha3_256_hex"]
