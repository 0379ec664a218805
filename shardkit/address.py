"""
shardkit.address
================

Deterministic contract addresses.

An address is 20 bytes: the big-endian shard id (2 bytes) followed by the last
18 bytes of

    sha3_256( shard_be2 || uvarint(len(public_key)) || public_key || salt32 || init_code )

so the same (public key, shard, salt, init code) always yields the same
address, on any machine, before the contract exists on chain. The shard is
recoverable from the address alone via :func:`shard_of`.

Plain contracts (deployed by someone else's wallet) derive with an empty
public key.

Usage
-----
    from shardkit.address import derive_address, shard_of, to_hex

    addr = derive_address(pubkey, shard_id=2, salt=100, init_code=wallet_code)
    assert shard_of(addr) == 2
    print(to_hex(addr))
"""

from __future__ import annotations

from typing import Optional, Union

from .config import DEFAULT, MAX_SHARD_COUNT
from .errors import InvalidShardId
from .utils.bytes import BytesLike, ensure_bytes, to_hex as _bytes_to_hex, uvarint_encode
from .utils.hash import sha3_256

ADDRESS_SIZE = 20
SHARD_ID_SIZE = 2
SALT_SIZE = 32

# Salt used when the caller supplies none.
DEFAULT_SALT = 0

AddressLike = Union[bytes, bytearray, memoryview, str]
SaltLike = Union[int, bytes, bytearray]


class AddressError(ValueError):
    """Raised for malformed addresses (wrong length or bad hex)."""


# ---- Validation helpers ----


def is_valid_shard_id(shard_id: object, shard_count: Optional[int] = None) -> bool:
    count = DEFAULT.shard_count if shard_count is None else shard_count
    return (
        isinstance(shard_id, int)
        and not isinstance(shard_id, bool)
        and 0 <= shard_id < min(count, MAX_SHARD_COUNT)
    )


def ensure_shard_id(shard_id: object, shard_count: Optional[int] = None) -> int:
    """Return `shard_id` unchanged or raise InvalidShardId."""
    count = DEFAULT.shard_count if shard_count is None else shard_count
    if not is_valid_shard_id(shard_id, count):
        raise InvalidShardId(shard_id=shard_id, shard_count=count)
    return shard_id  # type: ignore[return-value]


def salt_bytes(salt: SaltLike) -> bytes:
    """Serialize a salt to 32 big-endian bytes (ints < 2**256, or at most 32 raw bytes)."""
    if isinstance(salt, bool):
        raise TypeError("salt must be an int or bytes")
    if isinstance(salt, int):
        if not 0 <= salt < (1 << (8 * SALT_SIZE)):
            raise ValueError("salt out of range for 32 bytes")
        return salt.to_bytes(SALT_SIZE, "big")
    raw = bytes(salt)
    if len(raw) > SALT_SIZE:
        raise ValueError(f"salt must be at most {SALT_SIZE} bytes, got {len(raw)}")
    return raw.rjust(SALT_SIZE, b"\x00")


# ---- Core API ----


def derive_address(
    public_key: BytesLike,
    shard_id: int,
    salt: SaltLike = DEFAULT_SALT,
    init_code: BytesLike = b"",
    *,
    shard_count: Optional[int] = None,
) -> bytes:
    """
    Derive the 20-byte address of a contract account.

    Raises InvalidShardId when `shard_id` is outside [0, shard_count).
    """
    shard = ensure_shard_id(shard_id, shard_count)
    pk = ensure_bytes(public_key)
    shard_prefix = shard.to_bytes(SHARD_ID_SIZE, "big")
    digest = sha3_256(
        shard_prefix
        + uvarint_encode(len(pk))
        + pk
        + salt_bytes(salt)
        + ensure_bytes(init_code)
    )
    return shard_prefix + digest[-(ADDRESS_SIZE - SHARD_ID_SIZE):]


def as_address(value: AddressLike) -> bytes:
    """Normalize bytes or 0x-hex into a 20-byte address."""
    try:
        raw = ensure_bytes(value)
    except (TypeError, ValueError) as e:
        raise AddressError(f"invalid address {value!r}: {e}") from e
    if len(raw) != ADDRESS_SIZE:
        raise AddressError(f"address must be {ADDRESS_SIZE} bytes, got {len(raw)}")
    return raw


def shard_of(address: AddressLike) -> int:
    """Shard id embedded in the first two bytes of `address`."""
    return int.from_bytes(as_address(address)[:SHARD_ID_SIZE], "big")


def to_hex(address: AddressLike) -> str:
    """Lowercase 0x-hex rendering of an address."""
    return _bytes_to_hex(as_address(address))


__all__ = [
    "ADDRESS_SIZE",
    "SHARD_ID_SIZE",
    "SALT_SIZE",
    "DEFAULT_SALT",
    "AddressLike",
    "AddressError",
    "derive_address",
    "shard_of",
    "as_address",
    "to_hex",
    "salt_bytes",
    "is_valid_shard_id",
    "ensure_shard_id",
]
