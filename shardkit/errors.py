"""
Typed error classes for the shardkit SDK.

These are raised by address derivation, the message envelope, rpc/http, the
receipt waiter, the account client and the faucet so callers can catch
specific failure modes while still being able to catch the base
`ShardkitError`.

"Not yet confirmed" is never an exception: the receipt waiter reports it as a
`ReceiptChain` status. `ConfirmationTimeout` is raised only by operations that
promised to wait (sync sends, waiting deploys).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Sequence

__all__ = [
    "ShardkitError",
    "ConfigurationError",
    "InvalidShardId",
    "EnvelopeError",
    "AlreadySigned",
    "MissingSignature",
    "TransportError",
    "RpcError",
    "AbiError",
    "ExecutionFailure",
    "ConfirmationTimeout",
    "RetryExhausted",
    "JsonRpcCode",
    "from_jsonrpc_error",
    "raise_for_jsonrpc_result",
]


class ShardkitError(Exception):
    """Base class for all SDK errors."""


class ConfigurationError(ShardkitError, ValueError):
    """Contradictory or incomplete construction inputs (e.g. address and salt together)."""


@dataclass(slots=True, eq=False)
class InvalidShardId(ShardkitError):
    """Shard id outside the configured range [0, shard_count)."""

    shard_id: Any
    shard_count: int

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"invalid shard id {self.shard_id!r} (expected 0 <= id < {self.shard_count})"


class EnvelopeError(ShardkitError):
    """Envelope misuse or malformed raw envelope bytes."""


class AlreadySigned(EnvelopeError):
    """sign() called on an envelope that already carries auth data."""


class MissingSignature(EnvelopeError):
    """encode() called on a deploy/payload envelope without auth data."""


class TransportError(ShardkitError):
    """An RPC exchange with the node failed (network, HTTP or protocol level)."""


class JsonRpcCode(IntEnum):
    # JSON-RPC 2.0
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (implementation-defined range: -32099 to -32000)
    SERVER_ERROR = -32000
    TRANSPORT_FAILED = -32098


@dataclass(slots=True, eq=False)
class RpcError(TransportError):
    """Raised when a JSON-RPC call fails or returns an error object."""

    code: int
    message: str
    method: Optional[str] = None
    data: Optional[Any] = None
    request_id: Optional[Any] = None
    http_status: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"RPC[{self.method or '-'}] code={self.code} msg={self.message!r}"]
        if self.request_id is not None:
            parts.append(f"id={self.request_id}")
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.code)
        except ValueError:
            return None


@dataclass(slots=True, eq=False)
class AbiError(ShardkitError):
    """
    Raised when ABI lookup or encoding fails.

    Typical causes: unknown function name, wrong arg count or types.
    """

    message: str
    function: Optional[str] = None
    details: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f" [fn={self.function}]" if self.function else ""
        tail = f" ({self.details})" if self.details else ""
        return f"AbiError{where}: {self.message}{tail}"


@dataclass(slots=True, eq=False)
class ExecutionFailure(ShardkitError):
    """
    A receipt was observed with success = false.

    Fields:
      - message_hash: hash of the submitted envelope (0x-hex)
      - receipts: receipts collected so far (hop order); the failing ones have success=False
    """

    message: str
    message_hash: Optional[str] = None
    receipts: Sequence[Any] = field(default_factory=tuple)

    def __str__(self) -> str:  # pragma: no cover - trivial
        suffix = f" msg={self.message_hash}" if self.message_hash else ""
        failed = [r for r in self.receipts if not getattr(r, "success", True)]
        status = f" status={failed[0].status}" if failed and getattr(failed[0], "status", None) else ""
        return f"ExecutionFailure{suffix}{status}: {self.message}"


class ConfirmationTimeout(ShardkitError, TimeoutError):
    """A waiting operation saw no terminal receipt before its deadline."""

    def __init__(self, message: str, *, message_hash: Optional[str] = None, timeout_s: Optional[float] = None):
        super().__init__(message)
        self.message_hash = message_hash
        self.timeout_s = timeout_s

    def __str__(self) -> str:  # pragma: no cover - trivial
        base = self.args[0] if self.args else "confirmation timed out"
        return f"{base} (msg={self.message_hash}, timeout_s={self.timeout_s})"


@dataclass(slots=True, eq=False)
class RetryExhausted(ShardkitError):
    """Bounded retries used up. `last_cause` is also chained as __cause__."""

    attempts: int
    last_cause: Optional[BaseException] = None
    operation: str = "operation"

    def __str__(self) -> str:  # pragma: no cover - trivial
        cause = f": {self.last_cause}" if self.last_cause is not None else ""
        return f"{self.operation} failed after {self.attempts} attempt(s){cause}"


def from_jsonrpc_error(
    err_obj: Dict[str, Any],
    *,
    method: Optional[str] = None,
    request_id: Optional[Any] = None,
    http_status: Optional[int] = None,
) -> RpcError:
    """
    Convert a JSON-RPC error object into RpcError.

    `err_obj` should resemble: {"code": int, "message": str, "data": any?}
    """
    code = int(err_obj.get("code", JsonRpcCode.SERVER_ERROR))
    message = str(err_obj.get("message", "Unknown JSON-RPC error"))
    return RpcError(
        code=code,
        message=message,
        method=method,
        data=err_obj.get("data"),
        request_id=request_id,
        http_status=http_status,
    )


def raise_for_jsonrpc_result(
    result: Dict[str, Any],
    *,
    method: Optional[str] = None,
    http_status: Optional[int] = None,
) -> None:
    """
    If `result` contains an "error" field, raise RpcError.

    Called by the HTTP client after parsing a JSON-RPC response.
    """
    if "error" in result and result["error"] is not None:
        err = result["error"]
        if not isinstance(err, dict):
            err = {"message": str(err)}
        raise from_jsonrpc_error(
            err, method=method, request_id=result.get("id"), http_status=http_status
        )
