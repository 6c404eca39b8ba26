"""In-memory storage adapter for statistics."""

import asyncio
import threading
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

from statsketch.core.locks import acquire_async
from statsketch.core.models import Bucket, LatestValue

_BucketId = tuple[str, str, float, float]


class InMemoryStatsSession:
    """StatsSession over InMemoryStatsStorage.

    Writes are staged and only applied to the storage by commit().
    """

    def __init__(self, storage: "InMemoryStatsStorage") -> None:
        self._storage = storage
        self._latest: dict[tuple[str, str], LatestValue] = {}
        self._buckets: dict[_BucketId, Bucket] = {}

    def get_latest(self, name: str, key: str) -> LatestValue | None:
        staged = self._latest.get((name, key))
        if staged is not None:
            return staged
        return self._storage._latest.get((name, key))

    def put_latest(self, latest: LatestValue) -> None:
        self._latest[(latest.name, latest.key)] = latest

    def get_bucket(
        self, name: str, key: str, duration: float, start: float
    ) -> Bucket | None:
        bucket_id = (name, key, duration, start)
        staged = self._buckets.get(bucket_id)
        if staged is not None:
            return staged
        return self._storage._buckets.get(bucket_id)

    def put_bucket(self, bucket: Bucket) -> None:
        self._buckets[(bucket.name, bucket.key, bucket.duration, bucket.start)] = bucket

    def scan_buckets(
        self,
        name: str,
        key: str,
        duration: float,
        range_start: float,
        range_end: float,
    ) -> list[Bucket]:
        merged = {**self._storage._buckets, **self._buckets}
        matching = [
            b
            for (n, k, d, _), b in merged.items()
            if n == name
            and k == key
            and d == duration
            and b.start >= range_start
            and b.end <= range_end
        ]
        return sorted(matching, key=lambda b: b.start)

    def commit(self) -> None:
        self._storage._latest.update(self._latest)
        self._storage._buckets.update(self._buckets)


class AsyncInMemoryStatsSession:
    """AsyncStatsSession wrapper around InMemoryStatsSession."""

    def __init__(self, session: InMemoryStatsSession) -> None:
        self._session = session

    async def get_latest(self, name: str, key: str) -> LatestValue | None:
        return self._session.get_latest(name, key)

    async def put_latest(self, latest: LatestValue) -> None:
        self._session.put_latest(latest)

    async def get_bucket(
        self, name: str, key: str, duration: float, start: float
    ) -> Bucket | None:
        return self._session.get_bucket(name, key, duration, start)

    async def put_bucket(self, bucket: Bucket) -> None:
        self._session.put_bucket(bucket)

    async def scan_buckets(
        self,
        name: str,
        key: str,
        duration: float,
        range_start: float,
        range_end: float,
    ) -> list[Bucket]:
        return self._session.scan_buckets(name, key, duration, range_start, range_end)


class InMemoryStatsStorage:
    """In-memory implementation of StatsStoragePort.

    Stores latest values and buckets in dicts. Suitable for testing and
    low-volume applications where persistence is not required. Unlike the
    SQLite adapter, sync and async sessions share the same data.
    """

    def __init__(self) -> None:
        self._latest: dict[tuple[str, str], LatestValue] = {}
        self._buckets: dict[_BucketId, Bucket] = {}
        self._write_lock = threading.Lock()
        self._async_write_lock: asyncio.Lock | None = None

    def _get_async_lock(self) -> asyncio.Lock:
        """Get or create the async write lock (lazy to avoid event loop issues)."""
        if self._async_write_lock is None:
            self._async_write_lock = asyncio.Lock()
        return self._async_write_lock

    @contextmanager
    def session(self, write: bool = False) -> Iterator[InMemoryStatsSession]:
        """Open a session. Write sessions are serialized and commit on clean exit."""
        session = InMemoryStatsSession(self)
        if not write:
            yield session
            return
        with self._write_lock:
            yield session
            session.commit()

    @asynccontextmanager
    async def async_session(
        self, write: bool = False
    ) -> AsyncIterator[AsyncInMemoryStatsSession]:
        """Async counterpart of session().

        Write sessions also take the sync write lock, so sync and async
        writers are serialized against each other.
        """
        session = InMemoryStatsSession(self)
        if not write:
            yield AsyncInMemoryStatsSession(session)
            return
        async with self._get_async_lock():
            await acquire_async(self._write_lock)
            try:
                yield AsyncInMemoryStatsSession(session)
                session.commit()
            finally:
                self._write_lock.release()

    def count_buckets_sync(self) -> int:
        """Return the number of stored buckets."""
        return len(self._buckets)

    async def count_buckets(self) -> int:
        """Return the number of stored buckets."""
        return len(self._buckets)
