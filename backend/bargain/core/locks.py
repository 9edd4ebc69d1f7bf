"""
Per-key locks for serializing session writes.

Process-local: two workers behind a load balancer do not share these locks.
Entries are reference counted and dropped when the last holder releases, so
the registry only holds keys that are currently contended or held.
"""

import asyncio
import threading
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Dict, Iterator


class KeyedLocks:
    """A lazily-populated map of key -> threading.Lock."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for `key` for the duration of the block."""
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1

        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if self._holders[key] == 0:
                    del self._holders[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class AsyncKeyedLocks:
    """asyncio counterpart of KeyedLocks, for ordering write-then-broadcast per room."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
