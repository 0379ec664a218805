"""
shardkit.tx.envelope
====================

The canonical external message.

Wire format: a canonical CBOR array with a fixed field order

    [is_deploy, to, chain_id, seqno, data, value, auth_data]

The message hash covers every field except ``auth_data``:

    hash = sha3_256( cbor([is_deploy, to, chain_id, seqno, data, value]) )

so it is the same before and after signing, and the signature is computed
over exactly that hash.

Lifecycle: construct fresh per send, sign at most once, encode, submit once.
A retry builds a new envelope with a fresh seqno.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Protocol

import cbor2

from ..address import as_address, to_hex as _address_hex
from ..errors import AlreadySigned, EnvelopeError, MissingSignature
from ..utils.bytes import to_hex
from ..utils.hash import sha3_256

_FIELD_COUNT = 7


class _Signer(Protocol):
    def sign(self, digest: bytes) -> bytes: ...


def _cbor(obj: Any) -> bytes:
    return cbor2.dumps(obj, canonical=True)


@dataclass(slots=True, frozen=True)
class MessageEnvelope:
    is_deploy: bool
    to: bytes
    chain_id: int
    seqno: int
    data: bytes = b""
    value: int = 0
    auth_data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "to", as_address(self.to))
        object.__setattr__(self, "data", bytes(self.data))
        object.__setattr__(self, "auth_data", bytes(self.auth_data))
        for name in ("chain_id", "seqno", "value"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, int) or v < 0:
                raise EnvelopeError(f"{name} must be a non-negative int, got {v!r}")

    # ---- Hashing ----

    def _fields(self) -> List[Any]:
        return [bool(self.is_deploy), self.to, self.chain_id, self.seqno, self.data, self.value]

    def signing_bytes(self) -> bytes:
        """Canonical bytes covered by the hash (everything except auth_data)."""
        return _cbor(self._fields())

    def hash(self) -> bytes:
        return sha3_256(self.signing_bytes())

    def hash_hex(self) -> str:
        return to_hex(self.hash())

    # ---- Signing ----

    @property
    def signed(self) -> bool:
        return bool(self.auth_data)

    @property
    def needs_signature(self) -> bool:
        """Deploys and messages carrying a payload must be signed; bare value transfers need not."""
        return bool(self.is_deploy or self.data)

    def sign(self, signer: _Signer) -> "MessageEnvelope":
        """Attach `signer.sign(hash())` as auth_data. A second call raises AlreadySigned."""
        if self.signed:
            raise AlreadySigned(f"envelope {self.hash_hex()} is already signed")
        sig = bytes(signer.sign(self.hash()))
        if not sig:
            raise EnvelopeError("signer returned an empty signature")
        object.__setattr__(self, "auth_data", sig)
        return self

    # ---- Codec ----

    def encode(self) -> bytes:
        if self.needs_signature and not self.signed:
            raise MissingSignature(
                f"envelope {self.hash_hex()} carries a payload and must be signed before encoding"
            )
        return _cbor(self._fields() + [self.auth_data])

    @classmethod
    def decode(cls, raw: bytes) -> "MessageEnvelope":
        try:
            items = cbor2.loads(bytes(raw))
        except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
            raise EnvelopeError(f"malformed envelope: {e}") from e
        if not isinstance(items, list) or len(items) != _FIELD_COUNT:
            raise EnvelopeError("envelope must be a CBOR array of 7 fields")
        is_deploy, to, chain_id, seqno, data, value, auth_data = items
        if not isinstance(is_deploy, bool):
            raise EnvelopeError("is_deploy must be a bool")
        if not all(isinstance(b, bytes) for b in (to, data, auth_data)):
            raise EnvelopeError("to, data and auth_data must be byte strings")
        try:
            return cls(
                is_deploy=is_deploy,
                to=to,
                chain_id=chain_id,
                seqno=seqno,
                data=data,
                value=value,
                auth_data=auth_data,
            )
        except ValueError as e:
            raise EnvelopeError(f"malformed envelope: {e}") from e

    def __repr__(self) -> str:  # pragma: no cover - trivial
        kind = "deploy" if self.is_deploy else "call"
        return (
            f"MessageEnvelope({kind} to={_address_hex(self.to)} chain={self.chain_id} "
            f"seqno={self.seqno} value={self.value} data={len(self.data)}B signed={self.signed})"
        )


__all__ = ["MessageEnvelope"]
