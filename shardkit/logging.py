"""
shardkit.logging
----------------

Structured logging for applications built on the SDK:
- JSON or concise colored text formats
- Context-local fields via `contextvars` (account, shard, message, attempt, ...)
- Safe JSON serialization (bytes → 0x-hex, dataclasses → dicts)
- Stdlib only; library modules just use `logging.getLogger(__name__)`

The SDK itself never installs handlers. Applications opt in:

Usage
-----
    from shardkit import logging as slog

    slog.configure(json=False, level="INFO")  # once at process start
    log = slog.get_logger(__name__)

    with slog.scope(account="0x0002ab..", shard=2):
        log.info("funding wallet")

Account and faucet operations open a `scope` themselves, so their log lines
carry the account address and shard without extra work at the call site.
"""

from __future__ import annotations

import datetime as _dt
import io
import json
import logging
import os
import sys
import threading
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Iterator, Optional

# ----------------------------
# Context
# ----------------------------

_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("_SHARDKIT_LOG_CONTEXT", default={})

DEFAULT_CONTEXT_KEYS = (
    "account",
    "shard",
    "message_hash",
    "attempt",
    "operation",
)

ENV_FORMAT = "SHARDKIT_LOG_FORMAT"


def context() -> Dict[str, Any]:
    """Return a *copy* of the active logging context."""
    return dict(_LOG_CONTEXT.get())


def bind(**fields: Any) -> None:
    """Merge fields into the active context."""
    cur = dict(_LOG_CONTEXT.get())
    cur.update({k: _coerce_value(v) for k, v in fields.items()})
    _LOG_CONTEXT.set(cur)


def unbind(*keys: str) -> None:
    cur = dict(_LOG_CONTEXT.get())
    for k in keys:
        cur.pop(k, None)
    _LOG_CONTEXT.set(cur)


def clear_context() -> None:
    _LOG_CONTEXT.set({})


@contextmanager
def scope(**fields: Any) -> Iterator[Dict[str, Any]]:
    """
    Bind `fields` for the duration of the block; the prior context is restored on exit.
    """
    prev = dict(_LOG_CONTEXT.get())
    try:
        bind(**fields)
        yield context()
    finally:
        _LOG_CONTEXT.set(prev)


# ----------------------------
# JSON & Text formatters
# ----------------------------

# LogRecord attributes that are never treated as structured extras.
_RESERVED = frozenset(
    (
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    )
)

_RESET = "\x1b[0m"
_GREY = "\x1b[90m"
_CYAN = "\x1b[36m"

_LEVEL_COLOR = {
    logging.DEBUG: _GREY,
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1m\x1b[35m",
}


def _utcnow_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


def _supports_color(stream: Any) -> bool:
    try:
        return bool(stream.isatty()) and os.environ.get("NO_COLOR") is None
    except (AttributeError, ValueError):
        return False


def _coerce_value(v: Any) -> Any:
    # Keep basic JSON types as-is; coerce objects to readable forms.
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return "0x" + bytes(v).hex()
    if isinstance(v, (tuple, set, frozenset)):
        return [_coerce_value(x) for x in v]
    if isinstance(v, _dt.datetime):
        if v.tzinfo is None:
            v = v.replace(tzinfo=_dt.timezone.utc)
        return v.isoformat()
    if is_dataclass(v) and not isinstance(v, type):
        return asdict(v)
    return str(v)


def _extras(record: logging.LogRecord, skip: Any = ()) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in record.__dict__.items():
        if k.startswith("_") or k in _RESERVED or k in skip:
            continue
        out[k] = _coerce_value(v)
    return out


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utcnow_iso(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "pid": os.getpid(),
            "tid": threading.get_ident(),
        }
        payload.update(context())
        for k, v in _extras(record).items():
            payload.setdefault(k, v)

        if record.exc_info:
            payload["err"] = "".join(traceback.format_exception(*record.exc_info)).rstrip()

        return json.dumps(payload, default=_coerce_value, separators=(",", ":"))


class TextFormatter(logging.Formatter):
    """
    Human-friendly one-liner:
      2026-01-05T12:34:56.789+00:00 | INFO  | shardkit.contracts.faucet | account=0x0001.. attempt=2 | faucet attempt confirmed
    With colors when supported.
    """

    def __init__(self, stream: Any = None):
        super().__init__()
        self._color = _supports_color(stream) if stream is not None else False

    def format(self, record: logging.LogRecord) -> str:
        ctx = context()
        ctx_str = " ".join(f"{k}={ctx[k]}" for k in DEFAULT_CONTEXT_KEYS if ctx.get(k) is not None)
        extras = _extras(record, skip=set(DEFAULT_CONTEXT_KEYS) | set(ctx))
        extras_str = " ".join(f"{k}={v}" for k, v in extras.items())

        ts, lvl, name = _utcnow_iso(), f"{record.levelname:<5}", record.name
        if self._color:
            ts = f"{_GREY}{ts}{_RESET}"
            lvl = f"{_LEVEL_COLOR.get(record.levelno, '')}{lvl}{_RESET}"
            name = f"{_CYAN}{name}{_RESET}"
            ctx_str = f"{_GREY}{ctx_str}{_RESET}" if ctx_str else ""

        line = f"{ts} | {lvl} | {name}"
        if ctx_str:
            line += f" | {ctx_str}"
        if extras_str:
            line += f" {extras_str}"
        line += f" | {record.getMessage()}"

        if record.exc_info:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return line


# ----------------------------
# Public setup API
# ----------------------------


def _coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"unknown log level: {level!r}")
    return value


def _env_json_override() -> Optional[bool]:
    fmt = os.environ.get(ENV_FORMAT, "").strip().lower()
    if fmt == "json":
        return True
    if fmt == "text":
        return False
    return None


def _decide_json(json_flag: Optional[bool], stream: Any) -> bool:
    if json_flag is not None:
        return json_flag
    override = _env_json_override()
    if override is not None:
        return override
    # Machine output when not attached to a terminal.
    return not _supports_color(stream)


def configure(
    *,
    json: Optional[bool] = None,
    level: str | int = "INFO",
    stream: io.TextIOBase | Any = None,
    propagate_existing: bool = False,
) -> logging.Handler:
    """
    Configure the root logger and return the installed console handler.

    Parameters
    ----------
    json : bool | None
        If None, determined by env SHARDKIT_LOG_FORMAT=(json|text) and TTY detection.
    level : str | int
        Minimum log level.
    stream : TextIO
        Stream for console handler (default: stderr).
    propagate_existing : bool
        If True, leave existing handlers in place. Defaults to false (fresh config).
    """
    stream = stream if stream is not None else sys.stderr
    lvl = _coerce_level(level)

    root = logging.getLogger()
    root.setLevel(lvl)
    if not propagate_existing:
        for h in list(root.handlers):
            root.removeHandler(h)

    console = logging.StreamHandler(stream)
    console.setLevel(lvl)
    console.setFormatter(JSONFormatter() if _decide_json(json, stream) else TextFormatter(stream))
    root.addHandler(console)

    # httpx logs every request at INFO
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(lvl, logging.WARNING))
    return console


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a standard logger under the `shardkit` namespace by default."""
    return logging.getLogger(name or "shardkit")


__all__ = [
    "context",
    "bind",
    "unbind",
    "clear_context",
    "scope",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "get_logger",
    "DEFAULT_CONTEXT_KEYS",
]
