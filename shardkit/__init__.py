"""
shardkit: Python SDK for a sharded message-passing chain.
Convenience exports for the most common client APIs.
"""

from .version import __version__  # noqa: F401

# Core config & errors
from .config import DEFAULT, ShardkitConfig  # noqa: F401
from .errors import (  # noqa: F401
    AbiError,
    AlreadySigned,
    ConfigurationError,
    ConfirmationTimeout,
    EnvelopeError,
    ExecutionFailure,
    InvalidShardId,
    MissingSignature,
    RetryExhausted,
    RpcError,
    ShardkitError,
    TransportError,
)

# Addresses
from .address import DEFAULT_SALT, as_address, derive_address, shard_of, to_hex  # noqa: F401

# RPC
from .rpc.http import RpcClient  # noqa: F401
from .rpc.node import NodeClient, NodeRpcService  # noqa: F401

# Messages
from .tx.build import DeployPayload  # noqa: F401
from .tx.envelope import MessageEnvelope  # noqa: F401
from .tx.send import CompletionStatus, ReceiptChain, WaitMode, wait_until_completed  # noqa: F401
from .types.core import Receipt  # noqa: F401
from .types.abi import EthAbiCodec  # noqa: F401

# Wallet
from .wallet.account import AccountClient, AccountState, DeployResult  # noqa: F401
from .wallet.signer import LocalKeySigner, Signer  # noqa: F401

# Contracts
from .contracts.faucet import FAUCET_ADDRESS, Faucet, RetryPolicy  # noqa: F401

__all__ = [
    "__version__",
    # Core
    "ShardkitConfig", "DEFAULT",
    "ShardkitError", "ConfigurationError", "InvalidShardId",
    "EnvelopeError", "AlreadySigned", "MissingSignature",
    "TransportError", "RpcError", "AbiError",
    "ExecutionFailure", "ConfirmationTimeout", "RetryExhausted",
    # Address
    "DEFAULT_SALT", "derive_address", "shard_of", "as_address", "to_hex",
    # RPC
    "RpcClient", "NodeClient", "NodeRpcService",
    # Messages
    "MessageEnvelope", "DeployPayload", "Receipt",
    "ReceiptChain", "CompletionStatus", "WaitMode", "wait_until_completed",
    "EthAbiCodec",
    # Wallet
    "AccountClient", "AccountState", "DeployResult",
    "Signer", "LocalKeySigner",
    # Contracts
    "Faucet", "RetryPolicy", "FAUCET_ADDRESS",
]
