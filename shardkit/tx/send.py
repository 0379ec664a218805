"""
shardkit.tx.send
================

Submit envelopes to a node and await their receipts.

Primary entry points
--------------------
- submit(rpc, envelope) -> str
    Encodes the envelope, sends it via `submit_raw_message` and returns the
    locally computed message hash (0x-hex).

- wait_until_completed(rpc, shard_id, message_hash, *, timeout_s, poll_interval_s,
                       follow_outgoing=True) -> ReceiptChain
    Polls receipts breadth-first across shards until every hop has executed
    or the deadline passes. Never raises on timeout: the result is tagged
    COMPLETE, PARTIAL or TIMED_OUT.

- submit_and_wait(rpc, envelope, shard_id, *, wait=WaitMode.FULL_CHAIN, ...) -> (hash, chain)
    One submission plus an optional wait, the shape shared by sync and async sends.

Completion
----------
A receipt counts as settled once it is present and, when outgoing messages
are followed, each of its outgoing messages has a child receipt. Children
are then polled on their own shard by their own hash, so a multi-hop chain
is walked in hop order.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Iterator, Optional, Tuple, Union

from ..address import ensure_shard_id
from ..config import DEFAULT, ShardkitConfig
from ..rpc.node import NodeRpcService
from ..types.core import Hash, Receipt, normalize_hash
from .envelope import MessageEnvelope

log = logging.getLogger(__name__)


class CompletionStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    TIMED_OUT = "timed_out"


class WaitMode(str, Enum):
    """How long a send blocks after submission."""

    NONE = "none"  # return the hash immediately
    ORIGIN_HOP = "origin_hop"  # receipt of the submitted message only
    FULL_CHAIN = "full_chain"  # every hop across shards


@dataclass(slots=True, frozen=True)
class ReceiptChain:
    """Receipts in hop (breadth-first) order, tagged with how far the walk got."""

    status: CompletionStatus
    receipts: Tuple[Receipt, ...] = field(default_factory=tuple)

    @property
    def complete(self) -> bool:
        return self.status is CompletionStatus.COMPLETE

    @property
    def success(self) -> bool:
        """True only for a complete chain in which every receipt succeeded."""
        return self.complete and all(r.success for r in self.receipts)

    @property
    def failed(self) -> Tuple[Receipt, ...]:
        return tuple(r for r in self.receipts if not r.success)

    def __iter__(self) -> Iterator[Receipt]:
        return iter(self.receipts)

    def __len__(self) -> int:
        return len(self.receipts)

    def __getitem__(self, index: int) -> Receipt:
        return self.receipts[index]


# -----------------------------------------------------------------------------
# Core RPC calls
# -----------------------------------------------------------------------------


def submit_raw(rpc: NodeRpcService, raw: bytes) -> Hash:
    """Submit already-encoded envelope bytes; returns the node-reported hash."""
    if not isinstance(raw, (bytes, bytearray)):
        raise TypeError("raw must be bytes")
    return normalize_hash(rpc.submit_raw_message(bytes(raw)))


def submit(rpc: NodeRpcService, envelope: MessageEnvelope) -> Hash:
    """
    Encode and submit `envelope`; returns its hash.

    The returned hash is the one computed locally. A node reporting a
    different hash is logged, not trusted.
    """
    raw = envelope.encode()
    local = envelope.hash_hex()
    reported = submit_raw(rpc, raw)
    if reported != local:
        log.warning("node reported hash %s for message %s", reported, local)
    log.debug("submitted message %s (%d bytes, seqno=%d)", local, len(raw), envelope.seqno)
    return local


def get_receipt(rpc: NodeRpcService, shard_id: int, message_hash: Union[Hash, bytes]) -> Optional[Receipt]:
    """Receipt of `message_hash` on `shard_id`, or None while it has not executed."""
    return rpc.get_receipt(shard_id, normalize_hash(message_hash))


# -----------------------------------------------------------------------------
# Polling waiter
# -----------------------------------------------------------------------------


def wait_until_completed(
    rpc: NodeRpcService,
    shard_id: int,
    message_hash: Union[Hash, bytes],
    *,
    timeout_s: Optional[float] = None,
    poll_interval_s: Optional[float] = None,
    follow_outgoing: bool = True,
    config: Optional[ShardkitConfig] = None,
) -> ReceiptChain:
    """
    Poll until the message (and, with `follow_outgoing`, every message it
    caused) has a receipt, or until `timeout_s` elapses.

    Raises:
        InvalidShardId if the origin `shard_id` is outside the configured shards
        TransportError / RpcError on RPC failures (not retried here)
    """
    cfg = config or DEFAULT
    timeout = cfg.receipt_timeout if timeout_s is None else float(timeout_s)
    interval = cfg.receipt_poll_interval if poll_interval_s is None else float(poll_interval_s)
    deadline = time.monotonic() + timeout

    origin = ensure_shard_id(shard_id, cfg.shard_count)
    pending: Deque[Tuple[int, Hash]] = deque([(origin, normalize_hash(message_hash))])
    collected: list[Receipt] = []

    while pending:
        shard, h = pending[0]
        rec = get_receipt(rpc, shard, h)
        if rec is not None and (not follow_outgoing or rec.outputs_settled):
            pending.popleft()
            collected.append(rec)
            if follow_outgoing:
                for child in rec.output_receipts:
                    pending.append((child.shard_id, child.message_hash))  # type: ignore[union-attr]
            log.debug("receipt %s on shard %d success=%s", h, shard, rec.success)
            continue

        if time.monotonic() >= deadline:
            # A present but unsettled receipt still counts as progress.
            if rec is not None:
                collected.append(rec)
            status = CompletionStatus.PARTIAL if collected else CompletionStatus.TIMED_OUT
            log.info(
                "receipt wait for %s ended %s after %.1fs (%d receipt(s), %d hop(s) pending)",
                normalize_hash(message_hash),
                status.value,
                timeout,
                len(collected),
                len(pending),
            )
            return ReceiptChain(status=status, receipts=tuple(collected))

        time.sleep(interval)

    return ReceiptChain(status=CompletionStatus.COMPLETE, receipts=tuple(collected))


def submit_and_wait(
    rpc: NodeRpcService,
    envelope: MessageEnvelope,
    shard_id: int,
    *,
    wait: WaitMode = WaitMode.FULL_CHAIN,
    timeout_s: Optional[float] = None,
    poll_interval_s: Optional[float] = None,
    config: Optional[ShardkitConfig] = None,
) -> Tuple[Hash, Optional[ReceiptChain]]:
    """
    Submit `envelope` then wait according to `wait`. The chain is None for WaitMode.NONE.
    `shard_id` is the shard the envelope executes on (the shard of `envelope.to`).
    """
    h = submit(rpc, envelope)
    if wait is WaitMode.NONE:
        return h, None
    chain = wait_until_completed(
        rpc,
        shard_id,
        h,
        timeout_s=timeout_s,
        poll_interval_s=poll_interval_s,
        follow_outgoing=wait is WaitMode.FULL_CHAIN,
        config=config,
    )
    return h, chain


__all__ = [
    "CompletionStatus",
    "WaitMode",
    "ReceiptChain",
    "submit_raw",
    "submit",
    "get_receipt",
    "wait_until_completed",
    "submit_and_wait",
]
