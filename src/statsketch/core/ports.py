"""Port interfaces for statistics storage adapters.

These protocols define the contracts that storage adapters must implement.
The core domain depends only on these interfaces, not concrete implementations.
"""

from contextlib import AbstractAsyncContextManager, AbstractContextManager
from typing import Protocol, runtime_checkable

from statsketch.core.models import Bucket, LatestValue


@runtime_checkable
class StatsSession(Protocol):
    """Synchronous unit of work against a statistics store.

    Writes made through a write session become visible atomically when the
    session exits cleanly and are discarded when an exception escapes it.
    """

    def get_latest(self, name: str, key: str) -> LatestValue | None:
        """Return the latest value of (name, key), or None if never recorded."""
        ...

    def put_latest(self, latest: LatestValue) -> None:
        """Insert or overwrite the latest value of (latest.name, latest.key)."""
        ...

    def get_bucket(
        self, name: str, key: str, duration: float, start: float
    ) -> Bucket | None:
        """Return the bucket at (name, key, duration, start), or None."""
        ...

    def put_bucket(self, bucket: Bucket) -> None:
        """Upsert a bucket keyed by (name, key, duration, start)."""
        ...

    def scan_buckets(
        self,
        name: str,
        key: str,
        duration: float,
        range_start: float,
        range_end: float,
    ) -> list[Bucket]:
        """Return buckets with start >= range_start and end <= range_end.

        Returns:
            Matching buckets ordered by start ascending.
        """
        ...


@runtime_checkable
class AsyncStatsSession(Protocol):
    """Asynchronous counterpart of StatsSession."""

    async def get_latest(self, name: str, key: str) -> LatestValue | None: ...

    async def put_latest(self, latest: LatestValue) -> None: ...

    async def get_bucket(
        self, name: str, key: str, duration: float, start: float
    ) -> Bucket | None: ...

    async def put_bucket(self, bucket: Bucket) -> None: ...

    async def scan_buckets(
        self,
        name: str,
        key: str,
        duration: float,
        range_start: float,
        range_end: float,
    ) -> list[Bucket]: ...


@runtime_checkable
class StatsStoragePort(Protocol):
    """Port for statistics storage.

    Adapters implementing this protocol hand out sessions for reading and
    writing latest values and buckets.
    Examples: InMemoryStatsStorage, SQLiteStatsStorage.
    """

    def session(self, write: bool = False) -> AbstractContextManager[StatsSession]:
        """Open a synchronous session.

        Args:
            write: Open a serializing write transaction instead of a read.
        """
        ...

    def async_session(
        self, write: bool = False
    ) -> AbstractAsyncContextManager[AsyncStatsSession]:
        """Open an asynchronous session."""
        ...
