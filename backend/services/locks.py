"""
In-process serialization of stock mutations per (tenant, product, location).

Row locks (`SELECT ... FOR UPDATE`) cover concurrent API processes on
Postgres; these locks cover concurrent requests inside one process, which is
the only protection SQLite (offline API) gets.
"""
import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List, Tuple
from uuid import UUID

StockKey = Tuple[str, str, str]


class StockLockRegistry:
    def __init__(self):
        # Entries disappear once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[StockKey, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: StockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @staticmethod
    def make_keys(tenant_id: str, pairs: Iterable[Tuple[UUID, UUID]]) -> List[StockKey]:
        # Sorted, de-duplicated acquisition order avoids deadlocks between multi-key callers
        return sorted({(tenant_id, str(product_id), str(location_id)) for product_id, location_id in pairs})

    @asynccontextmanager
    async def hold(self, tenant_id: str, pairs: Iterable[Tuple[UUID, UUID]]) -> AsyncIterator[None]:
        locks = [self._lock_for(key) for key in self.make_keys(tenant_id, pairs)]
        acquired: List[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


stock_locks = StockLockRegistry()
