"""Per-statistic mutual exclusion for record calls."""

import asyncio
import threading
from collections.abc import AsyncIterator, Hashable, Iterator
from contextlib import asynccontextmanager, contextmanager

POLL_INTERVAL = 0.001


async def acquire_async(
    lock: threading.Lock, poll_interval: float = POLL_INTERVAL
) -> None:
    """Acquire a thread lock from a coroutine without blocking the event loop.

    Polls with non-blocking acquires, so a cancelled waiter never ends up
    holding the lock.
    """
    while not lock.acquire(blocking=False):
        await asyncio.sleep(poll_interval)


class KeyedLocks:
    """Thread locks scoped to a hashable key.

    Locks are created on first use and dropped once no holder or waiter
    remains, so the table only grows with the number of keys in flight.
    hold() and hold_async() take the same lock, so threads and coroutines
    exclude each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, tuple[threading.Lock, int]] = {}

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock, users = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, users + 1)
            return lock

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            lock, users = self._locks[key]
            if users == 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for key for the duration of the block."""
        lock = self._checkout(key)
        try:
            with lock:
                yield
        finally:
            self._checkin(key)

    @asynccontextmanager
    async def hold_async(self, key: Hashable) -> AsyncIterator[None]:
        """Async version of hold(); waits without blocking the event loop."""
        lock = self._checkout(key)
        try:
            await acquire_async(lock)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class AsyncKeyedLocks:
    """asyncio locks scoped to a hashable key. Single event loop only.

    Keeps waiting tasks of one loop in FIFO order; combine with
    KeyedLocks.hold_async() to also exclude threads.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for key for the duration of the block."""
        lock, users = self._locks.get(key, (asyncio.Lock(), 0))
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users == 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        return len(self._locks)
