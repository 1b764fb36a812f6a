"""Per-offer write serialization.

All mutating operations on one offer go through a single asyncio lock keyed
by offer id. Different offers never contend. Locks are dropped once nobody
holds or waits on them.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class KeyedLockRegistry:
    """Registry of asyncio locks keyed by an identifier."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Usage:
            async with offer_locks.hold(offer_id):
                ...
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


# Global registry for offers
offer_locks = KeyedLockRegistry()
