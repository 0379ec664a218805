"""RPC transport (JSON-RPC over HTTP) and the typed node adapter."""

from .http import RpcClient
from .node import NodeClient, NodeRpcService

__all__ = ["RpcClient", "NodeClient", "NodeRpcService"]
