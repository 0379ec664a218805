"""
Shared fixtures: an in-memory node that speaks the `NodeRpcService` protocol.

FakeNode decodes every submitted envelope, enforces per-address seqnos, applies
wallet/faucet value transfers to a balance table and serves receipts. Each
submission consumes one entry of `outcomes` (default "ok"):

  "ok"       -> successful receipt, transfer applied
  "fail"     -> receipt with success=False
  "missing"  -> accepted, but no receipt ever appears
  Exception  -> raised from submit_raw_message (nothing accepted)
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Tuple, Union

import pytest

from shardkit.address import as_address, shard_of
from shardkit.config import ShardkitConfig
from shardkit.errors import AbiError, RpcError
from shardkit.tx.envelope import MessageEnvelope
from shardkit.types.abi import FAUCET_ABI, WALLET_ABI, EthAbiCodec
from shardkit.types.core import Receipt, normalize_hash
from shardkit.wallet.signer import LocalKeySigner

KNOWN_ABI = tuple(WALLET_ABI) + tuple(FAUCET_ABI)

# Fixed test key so addresses are reproducible across runs.
TEST_PRIVATE_KEY = bytes.fromhex("4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318")


class FakeNode:
    def __init__(self, chain_id: int = 1) -> None:
        self.chain_id = chain_id
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.seqnos: Dict[bytes, int] = defaultdict(int)
        self.receipts: Dict[str, Receipt] = {}
        self.submitted: List[MessageEnvelope] = []
        self.balances: Dict[bytes, int] = defaultdict(int)
        self.outcomes: Deque[Union[str, BaseException]] = deque()
        self.codec = EthAbiCodec()

    # ---- NodeRpcService ----

    def submit_raw_message(self, raw: bytes) -> str:
        self.calls.append(("submit_raw_message", (raw,)))
        outcome = self.outcomes.popleft() if self.outcomes else "ok"
        if isinstance(outcome, BaseException):
            raise outcome
        env = MessageEnvelope.decode(raw)
        if env.seqno != self.seqnos[env.to]:
            raise RpcError(code=-32011, message="seqno mismatch", method="eth_sendRawTransaction")
        self.seqnos[env.to] += 1
        self.submitted.append(env)
        h = env.hash_hex()
        if outcome != "missing":
            success = outcome == "ok"
            if success:
                self._apply(env)
            self.receipts[h] = Receipt(
                success=success,
                message_hash=h,
                shard_id=shard_of(env.to),
                status="Success" if success else "ExecutionReverted",
                gas_used=21_000,
            )
        return h

    def get_seqno(self, address: Any, block_tag: Any = "latest") -> int:
        self.calls.append(("get_seqno", (address, block_tag)))
        return self.seqnos[as_address(address)]

    def get_chain_id(self) -> int:
        self.calls.append(("get_chain_id", ()))
        return self.chain_id

    def get_receipt(self, shard_id: int, message_hash: Any) -> Optional[Receipt]:
        self.calls.append(("get_receipt", (shard_id, message_hash)))
        return self.receipts.get(normalize_hash(message_hash))

    # ---- helpers ----

    def methods(self) -> List[str]:
        return [m for m, _ in self.calls]

    def _apply(self, env: MessageEnvelope) -> None:
        if env.is_deploy or not env.data:
            self.balances[env.to] += env.value
            return
        try:
            name, args = self.codec.decode_call(KNOWN_ABI, env.data)
        except AbiError:
            return
        if name == "asyncCall":
            dst, _refund, _bounce, _gas, _deploy, value, _data = args
            self.balances[env.to] -= value
            self.balances[as_address(dst)] += value
        elif name == "withdrawTo":
            dst, value = args
            self.balances[as_address(dst)] += value


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def cfg() -> ShardkitConfig:
    return ShardkitConfig(
        shard_count=4,
        receipt_poll_interval=0.001,
        receipt_timeout=0.2,
        funder_max_attempts=5,
        funder_attempt_timeout=0.02,
        funder_backoff=0.0,
    )


@pytest.fixture
def signer() -> LocalKeySigner:
    return LocalKeySigner.from_private_bytes(TEST_PRIVATE_KEY)
