"""Data models (receipts) and the ABI codec."""

from .core import BlockTag, Hash, Receipt, normalize_hash

__all__ = ["BlockTag", "Hash", "Receipt", "normalize_hash"]
