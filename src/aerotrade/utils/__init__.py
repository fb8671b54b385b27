"""Utility modules for AeroTrade."""

from aerotrade.utils.locks import LockTimeoutError, UserLockRegistry

__all__ = ["LockTimeoutError", "UserLockRegistry"]
