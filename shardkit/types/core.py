"""
shardkit.types.core
===================

Lightweight data models shared by the RPC adapter, the receipt waiter and the
account client.

- All models use dataclasses with `slots=True` for low overhead.
- Hashes are carried as lowercase 0x-hex strings, addresses as 20-byte `bytes`.
- `from_rpc_dict` accepts the node's camelCase JSON; quantities may be ints
  or 0x-hex strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping, Optional, Tuple, Union

from ..utils.bytes import from_hex, int_from_quantity, to_hex

Hash = str
BlockTag = Union[Literal["latest", "pending", "earliest"], int]


def normalize_hash(value: Union[str, bytes, bytearray]) -> Hash:
    """Lowercase 0x-hex form of a 32-byte message hash."""
    raw = bytes(value) if isinstance(value, (bytes, bytearray)) else from_hex(str(value))
    if len(raw) != 32:
        raise ValueError(f"message hash must be 32 bytes, got {len(raw)}")
    return to_hex(raw)


@dataclass(slots=True, frozen=True)
class Receipt:
    """
    Execution receipt of one message on one shard.

    `out_messages` are the hashes of messages this execution emitted;
    `output_receipts` holds, position for position, the child receipt or None
    while that child has not been produced yet.
    """

    success: bool
    message_hash: Hash
    shard_id: int
    status: str = ""
    gas_used: int = 0
    block_number: Optional[int] = None
    out_messages: Tuple[Hash, ...] = field(default_factory=tuple)
    output_receipts: Tuple[Optional["Receipt"], ...] = field(default_factory=tuple)

    @property
    def outputs_settled(self) -> bool:
        """True once every outgoing message has a child receipt."""
        if not self.out_messages:
            return True
        return len(self.output_receipts) == len(self.out_messages) and all(
            r is not None for r in self.output_receipts
        )

    @classmethod
    def from_rpc_dict(cls, d: Mapping[str, Any]) -> "Receipt":
        if "messageHash" not in d:
            raise ValueError("receipt is missing messageHash")
        block = d.get("blockNumber")
        return cls(
            success=bool(d.get("success", False)),
            message_hash=normalize_hash(d["messageHash"]),
            shard_id=int_from_quantity(d.get("shardId", 0)),
            status=str(d.get("status") or ""),
            gas_used=int_from_quantity(d.get("gasUsed", 0)),
            block_number=int_from_quantity(block) if block is not None else None,
            out_messages=tuple(normalize_hash(h) for h in (d.get("outMessages") or ())),
            output_receipts=tuple(
                cls.from_rpc_dict(r) if r is not None else None
                for r in (d.get("outputReceipts") or ())
            ),
        )

    def to_rpc_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "messageHash": self.message_hash,
            "shardId": self.shard_id,
            "status": self.status,
            "gasUsed": hex(self.gas_used),
            "outMessages": list(self.out_messages),
            "outputReceipts": [
                r.to_rpc_dict() if r is not None else None for r in self.output_receipts
            ],
        }
        if self.block_number is not None:
            out["blockNumber"] = hex(self.block_number)
        return out


__all__ = ["Hash", "BlockTag", "Receipt", "normalize_hash"]
