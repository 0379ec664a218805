"""Signers and the smart-account wallet client."""

from .account import AccountClient, AccountState, DeployResult
from .signer import LocalKeySigner, Signer

__all__ = ["AccountClient", "AccountState", "DeployResult", "LocalKeySigner", "Signer"]
