"""Per-user locking.

Every event touching a user's balances, transaction log or conversation
state runs under that user's lock, so mutations for one user are
linearised while different users proceed concurrently.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class UserLockRegistry:
    """Lock registry: telegram user id -> asyncio.Lock.

    Example:
        locks = UserLockRegistry()
        async with locks.hold(user_id, operation="withdraw"):
            # Read and mutate the user's state
            ...
    """

    def __init__(self, timeout: Optional[float] = 30.0):
        """Initialize the registry.

        Args:
            timeout: Maximum time to wait for a lock (None = wait forever)
        """
        self.timeout = timeout
        self._locks: dict[int, asyncio.Lock] = {}

    def get(self, user_id: int) -> asyncio.Lock:
        """Get or create the lock for a user."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def is_locked(self, user_id: int) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, user_id: int, operation: str = "event") -> AsyncIterator[None]:
        """Hold a user's lock for the duration of the block.

        Raises:
            LockTimeoutError: If the lock isn't acquired within the timeout
        """
        lock = self.get(user_id)
        try:
            if self.timeout:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
            else:
                await lock.acquire()
        except asyncio.TimeoutError:
            logger.warning(f"Lock timeout for user {user_id} after {self.timeout}s: {operation}")
            raise LockTimeoutError(
                f"Could not acquire lock for user {user_id} within {self.timeout}s"
            )

        logger.debug(f"Lock acquired for user {user_id}: {operation}")
        try:
            yield
        finally:
            lock.release()
            logger.debug(f"Lock released for user {user_id}: {operation}")

    @asynccontextmanager
    async def released(self, user_id: int, operation: str = "external call") -> AsyncIterator[None]:
        """Temporarily give up a held lock, e.g. around a slow HTTP call.

        The lock is re-acquired (without timeout) before the block exits, so
        the caller must re-validate anything it read before the release.
        """
        lock = self.get(user_id)
        lock.release()
        logger.debug(f"Lock released for user {user_id} during {operation}")
        try:
            yield
        finally:
            await lock.acquire()
            logger.debug(f"Lock re-acquired for user {user_id} after {operation}")
