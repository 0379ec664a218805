"""
SDK configuration: RPC endpoint, shard layout, receipt polling and faucet retry.

- Loads sane defaults and supports overrides via environment variables (SHARDKIT_*).
- Provides helpers for building HTTP headers and validating endpoints.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import ConfigurationError
from .version import user_agent as _default_user_agent

_DEFAULT_RPC = "http://127.0.0.1:8529"

# Address layout reserves 2 bytes for the shard id.
MAX_SHARD_COUNT = 1 << 16


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None else default


def _ensure_scheme(url: Optional[str], allowed: tuple[str, ...]) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ConfigurationError(f"URL must start with {allowed}, got: {url!r}")
    return url


def _parse(name: str, raw: Optional[str], conv: Any) -> Any:
    try:
        return conv(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"invalid value for {name}: {raw!r}") from e


@dataclass(slots=True)
class ShardkitConfig:
    # Core
    rpc_url: str = field(default_factory=lambda: _DEFAULT_RPC)
    shard_count: int = 4
    # HTTP behavior
    request_timeout: float = 10.0
    max_retries: int = 3
    backoff_factor: float = 0.25
    # Receipt polling
    receipt_poll_interval: float = 1.0
    receipt_timeout: float = 60.0
    # Faucet retry policy
    funder_max_attempts: int = 5
    funder_attempt_timeout: float = 10.0
    funder_backoff: float = 1.0
    # Headers / identity
    user_agent: str = field(default_factory=_default_user_agent)

    def __post_init__(self) -> None:
        if not 1 <= int(self.shard_count) <= MAX_SHARD_COUNT:
            raise ConfigurationError(
                f"shard_count must be in [1, {MAX_SHARD_COUNT}], got {self.shard_count}"
            )
        if self.funder_max_attempts < 1:
            raise ConfigurationError("funder_max_attempts must be >= 1")
        if self.receipt_poll_interval <= 0:
            raise ConfigurationError("receipt_poll_interval must be > 0")

    @classmethod
    def from_env(cls, prefix: str = "SHARDKIT_") -> "ShardkitConfig":
        """
        Create config from environment variables:

        SHARDKIT_RPC_URL                  (http/https)
        SHARDKIT_SHARD_COUNT              (int)
        SHARDKIT_TIMEOUT                  (float seconds, HTTP)
        SHARDKIT_MAX_RETRIES              (int)
        SHARDKIT_BACKOFF                  (float)
        SHARDKIT_RECEIPT_POLL_INTERVAL    (float seconds)
        SHARDKIT_RECEIPT_TIMEOUT          (float seconds)
        SHARDKIT_FUNDER_MAX_ATTEMPTS      (int)
        SHARDKIT_FUNDER_ATTEMPT_TIMEOUT   (float seconds)
        SHARDKIT_FUNDER_BACKOFF           (float seconds)
        SHARDKIT_USER_AGENT               (str)
        """

        def get(key: str, default: str, conv: Any) -> Any:
            name = f"{prefix}{key}"
            return _parse(name, _env(name, default), conv)

        rpc = _env(f"{prefix}RPC_URL", _DEFAULT_RPC)
        _ensure_scheme(rpc, ("http", "https"))

        return cls(
            rpc_url=rpc or _DEFAULT_RPC,
            shard_count=get("SHARD_COUNT", "4", int),
            request_timeout=get("TIMEOUT", "10.0", float),
            max_retries=get("MAX_RETRIES", "3", int),
            backoff_factor=get("BACKOFF", "0.25", float),
            receipt_poll_interval=get("RECEIPT_POLL_INTERVAL", "1.0", float),
            receipt_timeout=get("RECEIPT_TIMEOUT", "60.0", float),
            funder_max_attempts=get("FUNDER_MAX_ATTEMPTS", "5", int),
            funder_attempt_timeout=get("FUNDER_ATTEMPT_TIMEOUT", "10.0", float),
            funder_backoff=get("FUNDER_BACKOFF", "1.0", float),
            user_agent=_env(f"{prefix}USER_AGENT") or _default_user_agent(),
        )

    @classmethod
    def with_overrides(
        cls, base: Optional["ShardkitConfig"] = None, **overrides: Any
    ) -> "ShardkitConfig":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys are ignored.
        """
        base = base or cls.from_env()
        data = base.to_dict()
        data.update({k: v for k, v in overrides.items() if k in data})
        if "rpc_url" in overrides:
            _ensure_scheme(data["rpc_url"], ("http", "https"))
        return cls(**data)

    def http_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rpc_url": self.rpc_url,
            "shard_count": int(self.shard_count),
            "request_timeout": float(self.request_timeout),
            "max_retries": int(self.max_retries),
            "backoff_factor": float(self.backoff_factor),
            "receipt_poll_interval": float(self.receipt_poll_interval),
            "receipt_timeout": float(self.receipt_timeout),
            "funder_max_attempts": int(self.funder_max_attempts),
            "funder_attempt_timeout": float(self.funder_attempt_timeout),
            "funder_backoff": float(self.funder_backoff),
            "user_agent": self.user_agent,
        }


# Convenience singleton (safe to use for simple scripts)
DEFAULT = ShardkitConfig.from_env()

__all__ = ["ShardkitConfig", "DEFAULT", "MAX_SHARD_COUNT"]
