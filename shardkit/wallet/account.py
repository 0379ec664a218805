"""
shardkit.wallet.account
=======================

`AccountClient` drives a smart-account wallet: it deploys the wallet itself,
deploys other contracts, and sends messages through the wallet contract.

Identity
--------
An account is either

- *derived*: ``public_key`` + ``shard_id`` (+ optional ``salt``, default
  `DEFAULT_SALT`) + the wallet ``code``; the address is computed locally and
  the account starts UNINITIALIZED until `self_deploy`; or
- *attached*: an explicit ``address`` of an existing wallet (its shard is read
  from the address). Passing a salt as well is rejected, even if it happens
  to agree, because the two inputs could name different accounts.

Sending
-------
Every operation resolves the seqno of the target account (explicit argument
or a live ``get_seqno(address, "latest")``) and the chain id (explicit or
live), builds a fresh envelope, signs it and submits it once. The seqno is
never cached; sends on one address are serialized inside the process so two
threads cannot read the same seqno.

Sync and async sends share one envelope shape; they differ only in the
`WaitMode` applied after submission:

- `send_message`       -> WaitMode.NONE       (returns the hash at once)
- `sync_send_message`  -> WaitMode.ORIGIN_HOP (blocks for the first receipt)

Usage
-----
    from shardkit import AccountClient, Faucet, LocalKeySigner, NodeClient

    signer = LocalKeySigner.generate()
    node = NodeClient.from_url("http://127.0.0.1:8529")
    wallet = AccountClient(signer.public_key(), node, signer, shard_id=1, salt=100, code=WALLET_CODE)
    Faucet(node).withdraw_with_retry(wallet.address, 10**18)
    wallet.self_deploy()
    wallet.sync_send_message(other.address, value=10, gas=100_000)
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence, Tuple

from .. import logging as slog
from ..address import (
    DEFAULT_SALT,
    AddressError,
    AddressLike,
    SaltLike,
    as_address,
    derive_address,
    ensure_shard_id,
    shard_of,
    to_hex,
)
from ..config import DEFAULT, ShardkitConfig
from ..errors import ConfigurationError, ConfirmationTimeout, ExecutionFailure
from ..rpc.node import NodeRpcService
from ..tx.build import DeployPayload, call_envelope, deploy_envelope
from ..tx.envelope import MessageEnvelope
from ..tx.send import ReceiptChain, WaitMode, submit_and_wait
from ..types.abi import WALLET_ABI, Abi, AbiCodec, EthAbiCodec
from ..types.core import Hash
from .signer import Signer

log = logging.getLogger(__name__)


class AccountState(str, Enum):
    UNINITIALIZED = "uninitialized"
    DEPLOYED = "deployed"


@dataclass(slots=True, frozen=True)
class DeployResult:
    message_hash: Hash
    address: bytes

    @property
    def address_hex(self) -> str:
        return to_hex(self.address)


# ---- Per-address send locks ----

# Entries disappear once no send holds the lock.
_LOCKS: weakref.WeakValueDictionary[bytes, threading.Lock] = weakref.WeakValueDictionary()
_GLOBAL_LOCK = threading.Lock()


def _lock_for(address: bytes) -> threading.Lock:
    with _GLOBAL_LOCK:
        lock = _LOCKS.get(address)
        if lock is None:
            lock = _LOCKS[address] = threading.Lock()
        return lock


class AccountClient:
    def __init__(
        self,
        public_key: Optional[bytes],
        client: NodeRpcService,
        signer: Signer,
        *,
        address: Optional[AddressLike] = None,
        shard_id: Optional[int] = None,
        salt: Optional[SaltLike] = None,
        code: bytes = b"",
        abi_codec: Optional[AbiCodec] = None,
        config: Optional[ShardkitConfig] = None,
    ) -> None:
        self.config = config or DEFAULT
        self.client = client
        self.signer = signer
        self.abi_codec: AbiCodec = abi_codec or EthAbiCodec()
        self.public_key = bytes(public_key) if public_key is not None else None
        self.code = bytes(code)
        self.salt: Optional[SaltLike]

        if address is not None:
            if salt is not None:
                raise ConfigurationError("pass either an address or a salt, not both")
            try:
                addr = as_address(address)
            except AddressError as e:
                raise ConfigurationError(str(e)) from e
            embedded = ensure_shard_id(shard_of(addr), self.config.shard_count)
            if shard_id is not None and shard_id != embedded:
                raise ConfigurationError(
                    f"shard_id {shard_id} does not match shard {embedded} of address {to_hex(addr)}"
                )
            self.address = addr
            self.shard_id = embedded
            self.salt = None
        else:
            if self.public_key is None or shard_id is None:
                raise ConfigurationError("public_key and shard_id are required when no address is given")
            self.shard_id = ensure_shard_id(shard_id, self.config.shard_count)
            self.salt = DEFAULT_SALT if salt is None else salt
            self.address = derive_address(
                self.public_key, self.shard_id, self.salt, self.code, shard_count=self.config.shard_count
            )

        self.state = AccountState.UNINITIALIZED

    @staticmethod
    def calculate_address(
        public_key: bytes,
        shard_id: int,
        salt: SaltLike = DEFAULT_SALT,
        code: bytes = b"",
        *,
        shard_count: Optional[int] = None,
    ) -> bytes:
        return derive_address(public_key, shard_id, salt, code, shard_count=shard_count)

    @property
    def address_hex(self) -> str:
        return to_hex(self.address)

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"AccountClient({self.address_hex} shard={self.shard_id} state={self.state.value})"

    # ---- Deploys ----

    def self_deploy(
        self,
        *,
        wait: bool = True,
        seqno: Optional[int] = None,
        chain_id: Optional[int] = None,
        value: int = 0,
        timeout_s: Optional[float] = None,
    ) -> Hash:
        """
        Deploy this wallet at its derived address.

        With `wait`, blocks until the whole receipt chain settles and raises
        ExecutionFailure / ConfirmationTimeout otherwise. The account is
        DEPLOYED once the deploy is accepted (or confirmed, when waiting).
        """
        if self.salt is None or self.public_key is None:
            raise ConfigurationError("self_deploy needs the public key and salt the address was derived from")
        payload = DeployPayload(code=self.code, salt=self.salt, public_key=self.public_key)

        def make(s: int, c: int) -> MessageEnvelope:
            return deploy_envelope(
                payload,
                shard_id=self.shard_id,
                chain_id=c,
                seqno=s,
                value=value,
                shard_count=self.config.shard_count,
            )

        h, _ = self._send(
            self.address,
            make,
            seqno=seqno,
            chain_id=chain_id,
            wait=WaitMode.FULL_CHAIN if wait else WaitMode.NONE,
            timeout_s=timeout_s,
            operation="self_deploy",
        )
        self.state = AccountState.DEPLOYED
        return h

    def deploy_contract(
        self,
        *,
        bytecode: bytes,
        salt: SaltLike,
        shard_id: int,
        abi: Abi = (),
        args: Sequence[Any] = (),
        value: int = 0,
        seqno: Optional[int] = None,
        chain_id: Optional[int] = None,
        wait: WaitMode = WaitMode.NONE,
        timeout_s: Optional[float] = None,
    ) -> DeployResult:
        """
        Deploy a plain contract (no owner key) at
        ``derive_address(b"", shard_id, salt, bytecode + constructor_args)``.
        The seqno is that of the new contract's address.
        """
        code = bytes(bytecode) + self.abi_codec.encode_constructor(abi, args)
        payload = DeployPayload(code=code, salt=salt)
        target = payload.address(shard_id, shard_count=self.config.shard_count)

        def make(s: int, c: int) -> MessageEnvelope:
            return deploy_envelope(
                payload,
                shard_id=shard_id,
                chain_id=c,
                seqno=s,
                value=value,
                shard_count=self.config.shard_count,
            )

        h, _ = self._send(
            target,
            make,
            seqno=seqno,
            chain_id=chain_id,
            wait=wait,
            timeout_s=timeout_s,
            operation="deploy_contract",
        )
        return DeployResult(message_hash=h, address=target)

    # ---- Messages ----

    def send_message(
        self,
        to: AddressLike,
        value: int,
        gas: int,
        data: bytes = b"",
        *,
        refund_to: Optional[AddressLike] = None,
        bounce_to: Optional[AddressLike] = None,
        seqno: Optional[int] = None,
        chain_id: Optional[int] = None,
        wait: WaitMode = WaitMode.NONE,
        timeout_s: Optional[float] = None,
    ) -> Hash:
        """
        Ask the wallet to forward `value` (and `data`) to `to` with `gas` fee credit.

        Asynchronous by default: returns the hash right after submission.
        Cross-shard completion can be tracked with `wait_until_completed`.
        """
        calldata = self.abi_codec.encode_call(
            WALLET_ABI,
            "asyncCall",
            [
                as_address(to),
                as_address(refund_to) if refund_to is not None else self.address,
                as_address(bounce_to) if bounce_to is not None else self.address,
                int(gas),
                False,
                int(value),
                bytes(data),
            ],
        )

        def make(s: int, c: int) -> MessageEnvelope:
            return call_envelope(self.address, chain_id=c, seqno=s, data=calldata)

        h, _ = self._send(
            self.address,
            make,
            seqno=seqno,
            chain_id=chain_id,
            wait=wait,
            timeout_s=timeout_s,
            operation="send_message",
        )
        return h

    def sync_send_message(
        self,
        to: AddressLike,
        value: int,
        gas: int,
        data: bytes = b"",
        **kwargs: Any,
    ) -> Hash:
        """
        `send_message`, then block until the originating hop has a receipt.

        Raises ExecutionFailure if that receipt reports failure and
        ConfirmationTimeout if none arrives in time. Never retries.
        """
        kwargs["wait"] = WaitMode.ORIGIN_HOP
        return self.send_message(to, value, gas, data, **kwargs)

    # ---- internals ----

    def _send(
        self,
        to: bytes,
        make: Callable[[int, int], MessageEnvelope],
        *,
        seqno: Optional[int],
        chain_id: Optional[int],
        wait: WaitMode,
        timeout_s: Optional[float],
        operation: str,
    ) -> Tuple[Hash, Optional[ReceiptChain]]:
        with _lock_for(to), slog.scope(account=self.address_hex, shard=self.shard_id, operation=operation):
            if seqno is None:
                seqno = self.client.get_seqno(to, "latest")
            if chain_id is None:
                chain_id = self.client.get_chain_id()
            envelope = make(seqno, chain_id).sign(self.signer)
            h, chain = submit_and_wait(
                self.client,
                envelope,
                shard_of(to),
                wait=wait,
                timeout_s=timeout_s,
                config=self.config,
            )
            log.info("%s submitted %s to %s (seqno=%d)", operation, h, to_hex(to), seqno)
            if chain is not None:
                self._raise_for_chain(h, chain, operation, timeout_s)
        return h, chain

    def _raise_for_chain(self, h: Hash, chain: ReceiptChain, operation: str, timeout_s: Optional[float]) -> None:
        if chain.failed:
            raise ExecutionFailure(f"{operation} failed on chain", message_hash=h, receipts=chain.receipts)
        if not chain.complete:
            timeout = self.config.receipt_timeout if timeout_s is None else timeout_s
            raise ConfirmationTimeout(f"{operation} not confirmed", message_hash=h, timeout_s=timeout)


__all__ = ["AccountClient", "AccountState", "DeployResult"]
