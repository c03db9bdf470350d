"""Per-key asyncio locks."""

from __future__ import annotations

import asyncio
import weakref


class KeyedLocks:
    """Hands out one lock per key, so work on one key never blocks another.

    Locks are held weakly: once no holder or waiter references a key's lock,
    the entry disappears, so the table only tracks keys in use.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
