"""Per-property serialisation of finalize runs inside this process."""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import weakref

from ..core.errors import ConcurrencyConflictError


class PropertyLockRegistry:
    """One ``asyncio.Lock`` per property id; different properties never contend.

    Locks are held weakly, so a property's lock goes away once nobody holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock_for(self, property_id: str) -> asyncio.Lock:
        lock = self._locks.get(property_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[property_id] = lock
        return lock

    def is_locked(self, property_id: str) -> bool:
        lock = self._locks.get(property_id)
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, property_id: str, *, timeout: float) -> AsyncIterator[None]:
        lock = self.lock_for(property_id)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ConcurrencyConflictError(
                f"Another compliance update for property {property_id} is still running"
            ) from exc
        try:
            yield
        finally:
            lock.release()


property_locks = PropertyLockRegistry()
