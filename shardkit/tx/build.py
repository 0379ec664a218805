"""
shardkit.tx.build
=================

Helpers for constructing *unsigned* message envelopes.

- `DeployPayload`   : the data carried by deploy envelopes (code, salt, public key)
- `deploy_envelope` : is_deploy=True envelope whose `to` is derived from its payload
- `call_envelope`   : is_deploy=False envelope with opaque (ABI-encoded) data

Seqno and chain id are plain arguments here; resolving them against a live
node is the caller's job (see `shardkit.wallet.account`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import cbor2

from ..address import AddressLike, as_address, derive_address, salt_bytes
from ..errors import EnvelopeError
from .envelope import MessageEnvelope


@dataclass(slots=True, frozen=True)
class DeployPayload:
    """
    Deploy data: `code` is bytecode followed by any ABI-encoded constructor
    arguments. Wallet self-deploys carry the owner's public key, plain
    contracts an empty one. `salt` accepts an int or up to 32 bytes and is
    stored as 32 big-endian bytes.
    """

    code: bytes
    salt: bytes
    public_key: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", bytes(self.code))
        object.__setattr__(self, "salt", salt_bytes(self.salt))
        object.__setattr__(self, "public_key", bytes(self.public_key))

    def address(self, shard_id: int, *, shard_count: Optional[int] = None) -> bytes:
        return derive_address(self.public_key, shard_id, self.salt, self.code, shard_count=shard_count)

    def encode(self) -> bytes:
        return cbor2.dumps([self.code, self.salt, self.public_key], canonical=True)

    @classmethod
    def decode(cls, raw: bytes) -> "DeployPayload":
        try:
            items = cbor2.loads(bytes(raw))
        except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
            raise EnvelopeError(f"malformed deploy payload: {e}") from e
        if (
            not isinstance(items, list)
            or len(items) != 3
            or not all(isinstance(x, bytes) for x in items)
        ):
            raise EnvelopeError("deploy payload must be a CBOR array [code, salt, public_key]")
        return cls(code=items[0], salt=items[1], public_key=items[2])


def deploy_envelope(
    payload: DeployPayload,
    *,
    shard_id: int,
    chain_id: int,
    seqno: int,
    value: int = 0,
    shard_count: Optional[int] = None,
) -> MessageEnvelope:
    """Unsigned deploy envelope addressed to `payload.address(shard_id)`."""
    return MessageEnvelope(
        is_deploy=True,
        to=payload.address(shard_id, shard_count=shard_count),
        chain_id=chain_id,
        seqno=seqno,
        data=payload.encode(),
        value=value,
    )


def call_envelope(
    to: AddressLike,
    *,
    chain_id: int,
    seqno: int,
    data: bytes = b"",
    value: int = 0,
) -> MessageEnvelope:
    """Unsigned call envelope to an existing account."""
    return MessageEnvelope(
        is_deploy=False,
        to=as_address(to),
        chain_id=chain_id,
        seqno=seqno,
        data=data,
        value=value,
    )


__all__ = ["DeployPayload", "deploy_envelope", "call_envelope"]
