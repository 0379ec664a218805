"""
Version of the shardkit Python SDK.
We keep a static __version__ (PEP 440); the HTTP client advertises it in its
User-Agent header.
"""

from __future__ import annotations

# Bump this when publishing
__version__ = "0.1.0"


def user_agent() -> str:
    """Default User-Agent string, e.g. 'shardkit-py/0.1.0'."""
    return f"shardkit-py/{__version__}"


__all__ = ["__version__", "user_agent"]
