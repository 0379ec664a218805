"""Message envelopes: build, encode/sign, submit and await receipts."""

from .build import DeployPayload, call_envelope, deploy_envelope
from .envelope import MessageEnvelope
from .send import (
    CompletionStatus,
    ReceiptChain,
    WaitMode,
    submit,
    submit_and_wait,
    wait_until_completed,
)

__all__ = [
    "MessageEnvelope",
    "DeployPayload",
    "call_envelope",
    "deploy_envelope",
    "CompletionStatus",
    "ReceiptChain",
    "WaitMode",
    "submit",
    "submit_and_wait",
    "wait_until_completed",
]
