# inventory_backend/app/services/locks.py
"""
Per-key lock coordinator.

One asyncio.Lock per key (SKU or reservation id), created on first use and
dropped again once nobody holds or waits for it. Multi-key acquisition always
takes keys in sorted order so that two tasks needing overlapping key sets
cannot deadlock. Waiting is bounded; on timeout the caller gets LockBusyError
and nothing stays held.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple

from inventory_backend.app.core.exceptions import ServiceError
from inventory_backend.app.core.logging import get_logger

logger = get_logger(__name__)


class LockBusyError(ServiceError):
    """Lock not acquired in time. Safe to retry."""

    def __init__(self, namespace: str, key: str, timeout: Optional[float]):
        self.namespace = namespace
        self.key = key
        super().__init__(f"{namespace} {key} is busy, retry later (waited {timeout}s)", 503)


class _KeyedLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0  # holders + waiters


class KeyedLockCoordinator:
    """Exclusive locks keyed by string, with a bounded wait."""

    def __init__(self, namespace: str, timeout: Optional[float] = 5.0):
        self.namespace = namespace
        self.timeout = timeout
        self._locks: Dict[str, _KeyedLock] = {}

    def _checkout(self, key: str) -> _KeyedLock:
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyedLock()
        entry.users += 1
        return entry

    def _checkin(self, key: str, entry: _KeyedLock) -> None:
        entry.users -= 1
        if entry.users == 0:
            self._locks.pop(key, None)

    async def _acquire_one(self, key: str) -> _KeyedLock:
        entry = self._checkout(key)
        try:
            if self.timeout is None:
                await entry.lock.acquire()
            else:
                await asyncio.wait_for(entry.lock.acquire(), self.timeout)
        except asyncio.TimeoutError:
            self._checkin(key, entry)
            logger.warning("Lock wait timed out", namespace=self.namespace, key=key, timeout=self.timeout)
            raise LockBusyError(self.namespace, key, self.timeout)
        except BaseException:
            self._checkin(key, entry)
            raise
        return entry

    def _release_one(self, key: str, entry: _KeyedLock) -> None:
        entry.lock.release()
        self._checkin(key, entry)

    @asynccontextmanager
    async def acquire_many(self, keys: Iterable[str]) -> AsyncIterator[List[str]]:
        """
        Hold the locks of all distinct keys for the duration of the block.

        Keys are taken in lexicographic order and released in reverse.
        Yields the ordered key list.
        """
        ordered = sorted(set(keys))
        held: List[Tuple[str, _KeyedLock]] = []
        try:
            for key in ordered:
                held.append((key, await self._acquire_one(key)))
            yield ordered
        finally:
            for key, entry in reversed(held):
                self._release_one(key, entry)

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[str]:
        async with self.acquire_many([key]):
            yield key

    def is_locked(self, key: str) -> bool:
        entry = self._locks.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        return len(self._locks)
