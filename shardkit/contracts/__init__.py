"""Clients for system contracts."""

from .faucet import DEFAULT_WITHDRAW_VALUE, FAUCET_ADDRESS, Faucet, RetryPolicy

__all__ = ["Faucet", "RetryPolicy", "FAUCET_ADDRESS", "DEFAULT_WITHDRAW_VALUE"]
