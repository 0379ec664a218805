"""
shardkit.rpc.node
=================

The narrow slice of the node's RPC surface the SDK depends on.

`NodeRpcService` is the protocol consumed by the account client, the faucet
and the receipt waiter. `NodeClient` implements it over JSON-RPC:

    submit_raw_message(raw)            -> eth_sendRawTransaction   ["0x<cbor>"]
    get_seqno(address, "latest")       -> eth_getTransactionCount  ["0x<addr>", "latest"]
    get_chain_id()                     -> eth_chainId              []
    get_receipt(shard_id, msg_hash)    -> eth_getInMessageReceipt  [shard_id, "0x<hash>"]

Anything implementing the four methods (test fakes included) can stand in.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Union

from ..address import AddressLike, ensure_shard_id, to_hex as address_hex
from ..config import DEFAULT, MAX_SHARD_COUNT, ShardkitConfig
from ..errors import JsonRpcCode, RpcError
from ..types.core import BlockTag, Hash, Receipt, normalize_hash
from ..utils.bytes import BytesLike, int_from_quantity, to_hex
from .http import RpcClient

log = logging.getLogger(__name__)


class NodeRpcService(Protocol):
    def submit_raw_message(self, raw: bytes) -> Hash: ...

    def get_seqno(self, address: AddressLike, block_tag: BlockTag = "latest") -> int: ...

    def get_chain_id(self) -> int: ...

    def get_receipt(self, shard_id: int, message_hash: Union[Hash, bytes]) -> Optional[Receipt]: ...


def _block_tag(tag: BlockTag) -> Union[str, int]:
    if isinstance(tag, int) and not isinstance(tag, bool):
        return hex(tag)
    return str(tag)


class NodeClient:
    """JSON-RPC adapter implementing `NodeRpcService` on top of `RpcClient`."""

    def __init__(self, rpc: Optional[RpcClient] = None, *, config: Optional[ShardkitConfig] = None):
        self.config = config or DEFAULT
        self.rpc = rpc or RpcClient.from_config(self.config)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "NodeClient":
        config = ShardkitConfig.with_overrides(DEFAULT, rpc_url=url)
        return cls(RpcClient.from_config(config, **kwargs), config=config)

    def __enter__(self) -> "NodeClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def close(self) -> None:
        self.rpc.close()

    # ---- NodeRpcService ----

    def submit_raw_message(self, raw: BytesLike) -> Hash:
        result = self.rpc.request("eth_sendRawTransaction", [to_hex(raw)], idempotent=False)
        if not isinstance(result, str):
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message="unexpected result for eth_sendRawTransaction",
                method="eth_sendRawTransaction",
                data=result,
            )
        try:
            return normalize_hash(result)
        except ValueError as e:
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message=f"malformed message hash: {e}",
                method="eth_sendRawTransaction",
                data=result,
            ) from e

    def get_seqno(self, address: AddressLike, block_tag: BlockTag = "latest") -> int:
        result = self.rpc.request("eth_getTransactionCount", [address_hex(address), _block_tag(block_tag)])
        return self._quantity("eth_getTransactionCount", result)

    def get_chain_id(self) -> int:
        return self._quantity("eth_chainId", self.rpc.request("eth_chainId"))

    def get_receipt(self, shard_id: int, message_hash: Union[Hash, bytes]) -> Optional[Receipt]:
        # Child hops may name shards this client is not configured for;
        # only the address layout bounds the id here.
        ensure_shard_id(shard_id, MAX_SHARD_COUNT)
        result = self.rpc.request("eth_getInMessageReceipt", [shard_id, normalize_hash(message_hash)])
        if result in (None, False, ""):
            return None
        if not isinstance(result, dict):
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message="unexpected receipt payload",
                method="eth_getInMessageReceipt",
                data=result,
            )
        try:
            return Receipt.from_rpc_dict(result)
        except (TypeError, ValueError) as e:
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message=f"malformed receipt: {e}",
                method="eth_getInMessageReceipt",
                data=result,
            ) from e

    # ---- internals ----

    @staticmethod
    def _quantity(method: str, value: Any) -> int:
        try:
            return int_from_quantity(value)
        except (TypeError, ValueError) as e:
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message="expected a quantity",
                method=method,
                data=value,
            ) from e


__all__ = ["NodeRpcService", "NodeClient"]
