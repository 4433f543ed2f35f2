"""
Per-key asyncio locks.

Serializes read-modify-write sequences that touch the same booking
(webhook reconciliation, customer update/cancel) while letting unrelated
bookings proceed concurrently. Entries are reference counted and dropped
once nobody holds or waits on them.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

logger = logging.getLogger(__name__)


def booking_lock_key(booking_id: str) -> str:
    return f"booking:{booking_id}"


class KeyedLock:
    """Registry of asyncio.Lock objects keyed by correlation id."""

    def __init__(self):
        # key -> (lock, holders + waiters)
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, key: str) -> bool:
        entry = self._locks.get(key)
        return bool(entry and entry[0].locked())

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)

        try:
            if lock.locked():
                logger.debug(f"Waiting for lock {key}")
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)
