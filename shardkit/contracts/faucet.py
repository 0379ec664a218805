"""
shardkit.contracts.faucet
=========================

Client for the network faucet contract, used to fund fresh accounts before
they deploy.

`withdraw_with_retry` is the entry point tests and tooling should use: each
attempt builds a brand new ``withdrawTo(target, value)`` envelope with a fresh
seqno and chain id, submits it, and races the receipt waiter against a fixed
per-attempt deadline. Outcomes per attempt:

- chain complete, every receipt successful  -> done, return the hash
- chain not complete by the deadline        -> next attempt
- chain complete with a failed receipt      -> next attempt, unless the
  policy's ``retry_on_execution_failure`` is off (then ExecutionFailure)
- transport/RPC error                       -> sleep ``backoff_s`` and retry;
  on the last attempt the error propagates as-is

When attempts run out, `RetryExhausted` wraps the last cause.

The faucet contract does not check ``auth_data``; envelopes carrying a
payload must still be signed, so a throw-away key is generated when no
signer is supplied.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .. import logging as slog
from ..address import AddressLike, as_address, shard_of, to_hex
from ..config import DEFAULT, ShardkitConfig
from ..errors import ConfirmationTimeout, ExecutionFailure, RetryExhausted, TransportError
from ..rpc.node import NodeRpcService
from ..tx.build import call_envelope
from ..tx.envelope import MessageEnvelope
from ..tx.send import submit, wait_until_completed
from ..types.abi import FAUCET_ABI, AbiCodec, EthAbiCodec
from ..types.core import Hash
from ..utils.bytes import from_hex
from ..wallet.signer import LocalKeySigner, Signer

log = logging.getLogger(__name__)

FAUCET_ADDRESS = from_hex("0x000100000000000000000000000000000FA00CE7")
DEFAULT_WITHDRAW_VALUE = 10**18


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    attempt_timeout_s: float = 10.0
    backoff_s: float = 1.0
    retry_on_execution_failure: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_config(cls, config: ShardkitConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.funder_max_attempts,
            attempt_timeout_s=config.funder_attempt_timeout,
            backoff_s=config.funder_backoff,
        )


class Faucet:
    def __init__(
        self,
        client: NodeRpcService,
        *,
        address: AddressLike = FAUCET_ADDRESS,
        signer: Optional[Signer] = None,
        abi_codec: Optional[AbiCodec] = None,
        policy: Optional[RetryPolicy] = None,
        config: Optional[ShardkitConfig] = None,
    ) -> None:
        self.config = config or DEFAULT
        self.client = client
        self.address = as_address(address)
        self.signer: Signer = signer or LocalKeySigner.generate()
        self.abi_codec: AbiCodec = abi_codec or EthAbiCodec()
        self.policy = policy or RetryPolicy.from_config(self.config)

    def _envelope(self, target: bytes, value: int, seqno: int, chain_id: int) -> MessageEnvelope:
        data = self.abi_codec.encode_call(FAUCET_ABI, "withdrawTo", [target, int(value)])
        return call_envelope(self.address, chain_id=chain_id, seqno=seqno, data=data).sign(self.signer)

    def withdraw_to(
        self,
        target: AddressLike,
        value: int = DEFAULT_WITHDRAW_VALUE,
        *,
        seqno: Optional[int] = None,
        chain_id: Optional[int] = None,
    ) -> Hash:
        """Single-shot withdrawal: submit once, do not wait."""
        if seqno is None:
            seqno = self.client.get_seqno(self.address, "latest")
        if chain_id is None:
            chain_id = self.client.get_chain_id()
        return submit(self.client, self._envelope(as_address(target), value, seqno, chain_id))

    def withdraw_with_retry(
        self,
        target: AddressLike,
        value: int = DEFAULT_WITHDRAW_VALUE,
        *,
        max_attempts: Optional[int] = None,
    ) -> Hash:
        """Withdraw `value` to `target`, retrying per `self.policy`; returns the confirmed hash."""
        dst = as_address(target)
        attempts = self.policy.max_attempts if max_attempts is None else int(max_attempts)
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        last_cause: Optional[BaseException] = None

        with slog.scope(account=to_hex(dst), operation="faucet_withdraw"):
            for attempt in range(1, attempts + 1):
                slog.bind(attempt=attempt)
                try:
                    seqno = self.client.get_seqno(self.address, "latest")
                    chain_id = self.client.get_chain_id()
                    h = submit(self.client, self._envelope(dst, value, seqno, chain_id))
                    chain = wait_until_completed(
                        self.client,
                        shard_of(self.address),
                        h,
                        timeout_s=self.policy.attempt_timeout_s,
                        config=self.config,
                    )
                except TransportError as e:
                    if attempt >= attempts:
                        raise
                    last_cause = e
                    log.warning("faucet attempt %d/%d failed: %s", attempt, attempts, e)
                    time.sleep(self.policy.backoff_s)
                    continue

                if chain.success:
                    log.info("faucet withdrawal %s confirmed on attempt %d", h, attempt)
                    return h
                if chain.complete:
                    failure = ExecutionFailure("faucet withdrawal failed", message_hash=h, receipts=chain.receipts)
                    if not self.policy.retry_on_execution_failure:
                        raise failure
                    last_cause = failure
                    log.warning("faucet attempt %d/%d executed with failure (%s)", attempt, attempts, h)
                else:
                    last_cause = ConfirmationTimeout(
                        "faucet withdrawal not confirmed", message_hash=h, timeout_s=self.policy.attempt_timeout_s
                    )
                    log.warning(
                        "faucet attempt %d/%d not confirmed within %.1fs (%s)",
                        attempt,
                        attempts,
                        self.policy.attempt_timeout_s,
                        chain.status.value,
                    )

        raise RetryExhausted(
            attempts=attempts, last_cause=last_cause, operation="faucet withdrawal"
        ) from last_cause


__all__ = ["Faucet", "RetryPolicy", "FAUCET_ADDRESS", "DEFAULT_WITHDRAW_VALUE"]
