"""
shardkit.wallet.signer
======================

Message signers.

`Signer` is the protocol the SDK consumes: sign a 32-byte message hash and
expose the public key. `LocalKeySigner` implements it with secp256k1 ECDSA
from `cryptography`, holding the private key in process memory.

Signature format
----------------
64 bytes ``r || s`` (big-endian, 32 bytes each) over the message hash itself
(prehashed, no second hashing), with ``s`` normalized to the lower half of
the curve order so every signature has exactly one valid encoding.
Public keys are 33-byte SEC1 compressed points.
"""

from __future__ import annotations

from typing import Protocol, Union, runtime_checkable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from ..utils.bytes import ensure_bytes

__all__ = ["Signer", "LocalKeySigner", "SECP256K1_ORDER"]

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_HALF_ORDER = SECP256K1_ORDER // 2
_DIGEST_SIZE = 32


@runtime_checkable
class Signer(Protocol):
    def sign(self, digest: bytes) -> bytes: ...

    def public_key(self) -> bytes: ...


def _ecdsa() -> ec.ECDSA:
    return ec.ECDSA(Prehashed(hashes.SHA256()))


def _check_digest(digest: bytes) -> bytes:
    digest = bytes(digest)
    if len(digest) != _DIGEST_SIZE:
        raise ValueError(f"digest must be {_DIGEST_SIZE} bytes, got {len(digest)}")
    return digest


class LocalKeySigner:
    """secp256k1 signer over an in-memory private key."""

    __slots__ = ("_key", "_public")

    def __init__(self, private_key: ec.EllipticCurvePrivateKey) -> None:
        if not isinstance(private_key.curve, ec.SECP256K1):
            raise ValueError(f"expected a secp256k1 key, got {private_key.curve.name}")
        self._key = private_key
        self._public = private_key.public_key().public_bytes(Encoding.X962, PublicFormat.CompressedPoint)

    @classmethod
    def generate(cls) -> "LocalKeySigner":
        return cls(ec.generate_private_key(ec.SECP256K1()))

    @classmethod
    def from_private_bytes(cls, secret: Union[bytes, str]) -> "LocalKeySigner":
        raw = ensure_bytes(secret)
        if len(raw) != 32:
            raise ValueError("private key must be 32 bytes")
        value = int.from_bytes(raw, "big")
        if not 0 < value < SECP256K1_ORDER:
            raise ValueError("private key out of range")
        return cls(ec.derive_private_key(value, ec.SECP256K1()))

    from_hex = from_private_bytes

    def public_key(self) -> bytes:
        return self._public

    def private_bytes(self) -> bytes:
        return self._key.private_numbers().private_value.to_bytes(32, "big")

    def sign(self, digest: bytes) -> bytes:
        der = self._key.sign(_check_digest(digest), _ecdsa())
        r, s = decode_dss_signature(der)
        if s > _HALF_ORDER:
            s = SECP256K1_ORDER - s
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")

    def verify(self, digest: bytes, signature: bytes) -> bool:
        signature = bytes(signature)
        if len(signature) != 64:
            return False
        r = int.from_bytes(signature[:32], "big")
        s = int.from_bytes(signature[32:], "big")
        try:
            self._key.public_key().verify(encode_dss_signature(r, s), _check_digest(digest), _ecdsa())
        except InvalidSignature:
            return False
        return True

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"LocalKeySigner(public_key=0x{self._public.hex()})"
