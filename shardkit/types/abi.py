"""
ABI codec (Python SDK)

This module defines:
- TypedDict shapes for ABI entries (functions/constructors and parameters)
- The `AbiCodec` protocol the account client and faucet depend on
- `EthAbiCodec`, an Ethereum-ABI implementation on top of `eth-abi`
- Static ABI tables for the two system contracts the SDK talks to:
  the smart-account wallet and the network faucet

Selectors are the first 4 bytes of keccak256 over the canonical signature,
e.g. ``withdrawTo(address,uint256)``.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, Tuple, TypedDict

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import keccak

from ..errors import AbiError


class AbiParam(TypedDict, total=False):
    name: str
    type: str
    components: List["AbiParam"]


class AbiEntry(TypedDict, total=False):
    type: str  # "function" | "constructor" | "event" | ...
    name: str
    inputs: List[AbiParam]
    outputs: List[AbiParam]
    stateMutability: str


Abi = Sequence[AbiEntry]


class AbiCodec(Protocol):
    """Minimal interface used by the account client and the faucet."""

    def encode_call(self, abi: Abi, function_name: str, args: Sequence[Any]) -> bytes: ...

    def encode_constructor(self, abi: Abi, args: Sequence[Any]) -> bytes: ...


# --- Signatures ---------------------------------------------------------------


def canonical_type(param: AbiParam) -> str:
    """Type string with tuple components expanded, e.g. ``(address,uint256)[]``."""
    t = str(param.get("type", "")).replace(" ", "")
    if t.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){t[len('tuple'):]}"
    return t


def canonical_signature(name: str, inputs: Sequence[AbiParam]) -> str:
    return f"{name}({','.join(canonical_type(p) for p in inputs)})"


def function_selector(name: str, inputs: Sequence[AbiParam]) -> bytes:
    return keccak(text=canonical_signature(name, inputs))[:4]


def _find_function(abi: Abi, name: str, argc: Optional[int] = None) -> AbiEntry:
    matches = [e for e in abi if e.get("type", "function") == "function" and e.get("name") == name]
    if argc is not None and len(matches) > 1:
        matches = [e for e in matches if len(e.get("inputs", [])) == argc]
    if not matches:
        raise AbiError("function not found in ABI", function=name)
    if len(matches) > 1:
        raise AbiError("ambiguous overloaded function", function=name)
    return matches[0]


# --- Codec --------------------------------------------------------------------


def _encodable(type_str: str, value: Any) -> Any:
    """Byte addresses become lowercase 0x-hex; arrays are mapped element-wise."""
    if type_str == "address" and isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if type_str.endswith("]") and isinstance(value, (list, tuple)):
        inner = type_str[: type_str.rindex("[")]
        return [_encodable(inner, v) for v in value]
    return value


def _encode(types: List[str], args: Sequence[Any]) -> bytes:
    return abi_encode(types, [_encodable(t, v) for t, v in zip(types, args)])


class EthAbiCodec:
    """Ethereum ABI (selector + head/tail encoding) via eth-abi."""

    def encode_call(self, abi: Abi, function_name: str, args: Sequence[Any]) -> bytes:
        fn = _find_function(abi, function_name, len(args))
        inputs = fn.get("inputs", [])
        if len(inputs) != len(args):
            raise AbiError(
                "wrong number of arguments",
                function=function_name,
                details=f"expected {len(inputs)}, got {len(args)}",
            )
        types = [canonical_type(p) for p in inputs]
        try:
            body = _encode(types, args)
        except (EncodingError, TypeError, ValueError) as e:
            raise AbiError("cannot encode arguments", function=function_name, details=str(e)) from e
        return function_selector(function_name, inputs) + body

    def encode_constructor(self, abi: Abi, args: Sequence[Any]) -> bytes:
        ctor = next((e for e in abi if e.get("type") == "constructor"), None)
        inputs = ctor.get("inputs", []) if ctor else []
        if len(inputs) != len(args):
            raise AbiError(
                "wrong number of constructor arguments",
                function="constructor",
                details=f"expected {len(inputs)}, got {len(args)}",
            )
        if not inputs:
            return b""
        try:
            return _encode([canonical_type(p) for p in inputs], args)
        except (EncodingError, TypeError, ValueError) as e:
            raise AbiError("cannot encode constructor arguments", function="constructor", details=str(e)) from e

    def decode_call(self, abi: Abi, data: bytes) -> Tuple[str, Tuple[Any, ...]]:
        """Inverse of `encode_call`: returns (function name, decoded args)."""
        data = bytes(data)
        if len(data) < 4:
            raise AbiError("calldata shorter than a selector")
        for e in abi:
            if e.get("type", "function") != "function":
                continue
            inputs = e.get("inputs", [])
            if function_selector(e["name"], inputs) == data[:4]:
                try:
                    values = abi_decode([canonical_type(p) for p in inputs], data[4:])
                except DecodingError as err:
                    raise AbiError("cannot decode calldata", function=e["name"], details=str(err)) from err
                return e["name"], tuple(values)
        raise AbiError(f"unknown selector 0x{data[:4].hex()}")


# --- System contract ABIs -------------------------------------------------------

WALLET_ABI: Abi = (
    {
        "type": "function",
        "name": "asyncCall",
        "stateMutability": "payable",
        "inputs": [
            {"name": "dst", "type": "address"},
            {"name": "refundTo", "type": "address"},
            {"name": "bounceTo", "type": "address"},
            {"name": "feeCredit", "type": "uint256"},
            {"name": "deploy", "type": "bool"},
            {"name": "value", "type": "uint256"},
            {"name": "callData", "type": "bytes"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
)

FAUCET_ABI: Abi = (
    {
        "type": "function",
        "name": "withdrawTo",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "addr", "type": "address"},
            {"name": "value", "type": "uint256"},
        ],
        "outputs": [],
    },
)


__all__ = [
    "Abi",
    "AbiEntry",
    "AbiParam",
    "AbiCodec",
    "EthAbiCodec",
    "canonical_type",
    "canonical_signature",
    "function_selector",
    "WALLET_ABI",
    "FAUCET_ABI",
]
