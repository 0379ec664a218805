"""
HTTP JSON-RPC client (sync).

- httpx-based, friendly to unit tests and mocks (respx).
- Retries idempotent RPC calls on transient transport failures and 429/5xx
  HTTP with exponential backoff plus jitter.
- Non-idempotent calls (message submission) are sent exactly once; whether
  to resubmit is the caller's decision.

Example:
    from shardkit.rpc.http import RpcClient
    with RpcClient("http://localhost:8529") as rpc:
        print(rpc.request("eth_chainId"))
"""

from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Union

import httpx

from ..config import ShardkitConfig
from ..errors import JsonRpcCode, RpcError, raise_for_jsonrpc_result
from ..version import user_agent

log = logging.getLogger(__name__)

JSON = Union[dict, list, str, int, float, bool, None]
Params = Union[Sequence[Any], Mapping[str, Any], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_retriable_http(status: int) -> bool:
    # Typical transient HTTP statuses
    return status in (429, 502, 503, 504)


def _jitter_backoff(base: float, factor: float, attempt: int, jitter: float) -> float:
    # Exponential backoff with jitter in [0, jitter]
    return base * (factor ** max(attempt - 1, 0)) + random.random() * jitter


class _RetriableHttpStatus(Exception):
    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}")
        self.status = status
        self.body = body


# A server that drops the connection mid-response is treated like a timeout.
_TRANSIENT = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError, _RetriableHttpStatus)


@dataclass
class RpcClient:
    """Synchronous JSON-RPC 2.0 client over HTTP."""

    url: str
    timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.25
    backoff_factor: float = 1.8
    backoff_jitter: float = 0.2
    headers: Optional[Mapping[str, str]] = None
    transport: Optional[httpx.BaseTransport] = None
    _id_counter: Iterator[int] = field(default_factory=lambda: count(start=_now_ms()))
    _client: httpx.Client = field(init=False, repr=False)

    def __post_init__(self) -> None:
        merged_headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": user_agent(),
        }
        if self.headers:
            merged_headers.update(dict(self.headers))
        self._client = httpx.Client(
            timeout=self.timeout,
            headers=merged_headers,
            transport=self.transport,
        )

    @classmethod
    def from_config(cls, config: ShardkitConfig, **kwargs: Any) -> "RpcClient":
        return cls(
            url=config.rpc_url,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
            backoff_base=config.backoff_factor,
            headers=config.http_headers(),
            **kwargs,
        )

    # --- context manager -------------------------------------------------

    def __enter__(self) -> "RpcClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def close(self) -> None:
        self._client.close()

    # --- public API ------------------------------------------------------

    def request(
        self,
        method: str,
        params: Params = None,
        *,
        idempotent: bool = True,
        id: Optional[Union[int, str]] = None,
    ) -> JSON:
        """Perform a single JSON-RPC request and return `result` or raise RpcError."""
        payload = self._make_payload(method, params, id)
        retries = self.max_retries if idempotent else 0
        return self._send_with_retries(payload, retries)

    # --- internals -------------------------------------------------------

    def _make_payload(self, method: str, params: Params, id: Optional[Union[int, str]] = None) -> Dict[str, Any]:
        if id is None:
            id = next(self._id_counter)
        if params is None:
            params = []
        elif isinstance(params, Mapping):
            params = dict(params)
        elif isinstance(params, Sequence) and not isinstance(params, (str, bytes, bytearray)):
            params = list(params)
        else:
            # Coerce single param into positional list
            params = [params]  # type: ignore[list-item]
        return {"jsonrpc": "2.0", "id": id, "method": method, "params": params}

    def _send_with_retries(self, payload: Dict[str, Any], retries: int) -> JSON:
        method = payload["method"]
        last_exc: Optional[Exception] = None
        for attempt in range(1, retries + 2):  # N retries -> N+1 attempts
            try:
                return self._send_once(payload)
            except _TRANSIENT as e:
                last_exc = e
                if attempt > retries:
                    break
                delay = _jitter_backoff(self.backoff_base, self.backoff_factor, attempt, self.backoff_jitter)
                log.debug("rpc %s transient failure (%s); retry %d in %.2fs", method, e, attempt, delay)
                time.sleep(delay)
            except httpx.TransportError as e:
                # ProxyError, UnsupportedProtocol, LocalProtocolError: not transient
                last_exc = e
                log.debug("rpc %s transport failure (%s); not retried", method, e)
                break
        # Retries used up (or none allowed): surface as a transport-level RpcError
        status = last_exc.status if isinstance(last_exc, _RetriableHttpStatus) else None
        raise RpcError(
            code=JsonRpcCode.TRANSPORT_FAILED,
            message="RPC transport failed",
            method=method,
            data=str(last_exc),
            request_id=payload["id"],
            http_status=status,
        ) from last_exc

    def _send_once(self, payload: Dict[str, Any]) -> JSON:
        method = payload["method"]
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        r = self._client.post(self.url, content=body)
        if _is_retriable_http(r.status_code):
            raise _RetriableHttpStatus(r.status_code, r.text[:256])
        # Avoid raise_for_status() to keep the error body visible below
        try:
            resp = r.json()
        except ValueError as e:
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message="Non-JSON response from RPC",
                method=method,
                data=f"HTTP {r.status_code}: {r.text[:256]}",
                http_status=r.status_code,
            ) from e

        if not isinstance(resp, dict):
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message="Invalid JSON-RPC response type",
                method=method,
                data=type(resp).__name__,
                http_status=r.status_code,
            )
        raise_for_jsonrpc_result(resp, method=method, http_status=r.status_code)
        if "result" not in resp:
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message="Malformed JSON-RPC response",
                method=method,
                data=resp,
                http_status=r.status_code,
            )
        return resp["result"]


__all__ = ["RpcClient"]
