from __future__ import annotations

from typing import Any, Union

BytesLike = Union[bytes, bytearray, memoryview]


def ensure_bytes(data: Union[BytesLike, str]) -> bytes:
    """
    Ensure input is bytes.

    Accepts:
      - bytes / bytearray / memoryview  -> bytes(data)
      - str: treated as hex; optional '0x' prefix; even-length enforced

    Raises:
      ValueError on invalid hex strings.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return from_hex(data)
    raise TypeError(f"Unsupported type for ensure_bytes: {type(data)!r}")


def to_hex(b: BytesLike, prefix: bool = True) -> str:
    """
    Bytes -> hex string (lowercase). Prefix with '0x' by default.
    """
    s = bytes(b).hex()
    return f"0x{s}" if prefix else s


def from_hex(s: str) -> bytes:
    """
    Hex string (optionally '0x' prefixed) -> bytes.

    Enforces even-length (nibbles must pair to bytes), case-insensitive.
    """
    if not isinstance(s, str):
        raise TypeError("from_hex expects a string")
    if s.startswith(("0x", "0X")):
        s = s[2:]
    if len(s) % 2 != 0:
        raise ValueError("hex string must have even length")
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise ValueError(f"invalid hex string: {e}") from e


def int_from_quantity(value: Any) -> int:
    """
    Parse a JSON-RPC quantity: int, decimal str or 0x-hex str.
    """
    if isinstance(value, bool):
        raise TypeError("quantity must not be a bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s.startswith(("0x", "0X")):
            return int(s, 16) if len(s) > 2 else 0
        return int(s, 10)
    raise TypeError(f"unsupported quantity type: {type(value)!r}")


# --- Unsigned varint (LEB128) -------------------------------------------------


def uvarint_encode(n: int) -> bytes:
    """
    Encode an unsigned integer using LEB128 (base-128 varint).

    Example:
        0x00 -> b'\\x00'
        0x7f -> b'\\x7f'
        0x80 -> b'\\x80\\x01'
    """
    if n < 0:
        raise ValueError("uvarint_encode expects a non-negative integer")
    out = bytearray()
    while True:
        to_write = n & 0x7F
        n >>= 7
        if n:
            out.append(to_write | 0x80)  # continuation bit
        else:
            out.append(to_write)
            break
    return bytes(out)


__all__ = [
    "BytesLike",
    "ensure_bytes",
    "to_hex",
    "from_hex",
    "int_from_quantity",
    "uvarint_encode",
]
