"""Small byte and hashing helpers shared by the SDK modules."""

from .bytes import BytesLike, ensure_bytes, from_hex, int_from_quantity, to_hex, uvarint_encode
from .hash import sha3_256, sha3_256_hex

__all__ = [
    "BytesLike",
    "ensure_bytes",
    "from_hex",
    "int_from_quantity",
    "to_hex",
    "uvarint_encode",
    "sha3_256",
    "sha3_256_hex",
]
