"""StatStore: record and query time-bucketed statistics."""

import logging
from collections.abc import Sequence

from statsketch.core.bucketer import fold, fold_async
from statsketch.core.config import StatStoreConfig, validate_durations
from statsketch.core.durations import bucket_window, now_ms
from statsketch.core.locks import AsyncKeyedLocks, KeyedLocks
from statsketch.core.models import (
    Bucket,
    LatestValue,
    QueryResult,
    RecordResult,
    StatSnapshot,
    Summary,
)
from statsketch.core.ports import StatsStoragePort
from statsketch.core.query import summarize
from statsketch.core.recorder import resolve_record
from statsketch.core.updates import ValueSource

logger = logging.getLogger(__name__)


class StatStore:
    """Records statistics and answers current-value and range queries.

    Every record call updates the latest value of (name, key) and folds the
    value into one bucket per configured duration. The read-check-write
    sequence runs under a per-(name, key) lock, shared by the sync and async
    paths, inside a single write session.

    Async methods (record, query, get) use the storage's async sessions;
    the _sync variants use its sync sessions.

    Example:
        ```python
        from statsketch import InMemoryStatsStorage, StatStore, increment

        store = StatStore(InMemoryStatsStorage())
        store.record_sync("post.num_likes", post_id, increment())
        ```
    """

    def __init__(
        self, storage: StatsStoragePort, config: StatStoreConfig | None = None
    ) -> None:
        self._storage = storage
        self._config = config or StatStoreConfig()
        self._locks = KeyedLocks()
        self._async_locks = AsyncKeyedLocks()

    @property
    def config(self) -> StatStoreConfig:
        return self._config

    def _durations(self, durations: Sequence[float] | None) -> tuple[float, ...]:
        if durations is None:
            return self._config.durations
        resolved = tuple(durations)
        validate_durations(resolved)
        return resolved

    def _snapshot_duration(self, duration: float | None) -> float | None:
        if duration is not None:
            validate_durations((duration,))
            return duration
        return self._config.longest_duration

    # --- Async methods ---

    async def record(
        self,
        name: str,
        key: str,
        source: ValueSource,
        timestamp: float | None = None,
        durations: Sequence[float] | None = None,
    ) -> RecordResult:
        """Record a value for (name, key).

        Args:
            name: Statistic name (e.g., "post.num_likes").
            key: Entity key (e.g., a post id).
            source: Fixed value or updater of the previous value.
            timestamp: Epoch milliseconds (default: now).
            durations: Bucket widths to fan out to (default: configured).

        Returns:
            RecordResult with the resolved value. For an update, recorded_at
            is the previous recorded timestamp.

        Raises:
            TimelineViolationError: If timestamp is not after the stored one.
        """
        timestamp = now_ms() if timestamp is None else timestamp
        widths = self._durations(durations)
        async with self._async_locks.hold((name, key)):
            async with self._locks.hold_async((name, key)):
                async with self._storage.async_session(write=True) as session:
                    previous = await session.get_latest(name, key)
                    latest, result = resolve_record(
                        previous, source, name, key, timestamp
                    )
                    await session.put_latest(latest)
                    for duration in widths:
                        await fold_async(
                            session,
                            name,
                            key,
                            latest.value,
                            timestamp,
                            duration,
                            self._config.relative_accuracy,
                        )
        logger.debug(
            "Recorded %s[%s]=%s at %s (%s)",
            name,
            key,
            result.value,
            timestamp,
            result.status,
        )
        return result

    async def query(
        self,
        name: str,
        key: str,
        duration: float,
        range_start: float,
        range_end: float,
    ) -> QueryResult | None:
        """Merge the buckets of (name, key, duration) inside a time range.

        Only buckets lying entirely within [range_start, range_end] count.

        Returns:
            QueryResult, or None when no bucket matches.
        """
        async with self._storage.async_session() as session:
            buckets = await session.scan_buckets(
                name, key, duration, range_start, range_end
            )
        logger.debug(
            "Query %s[%s] duration=%s [%s, %s] matched %d buckets",
            name,
            key,
            duration,
            range_start,
            range_end,
            len(buckets),
        )
        return summarize(buckets, self._config.relative_accuracy)

    async def get(
        self, name: str, key: str, duration: float | None = None
    ) -> StatSnapshot | None:
        """Return the latest value of (name, key) with its current bucket.

        Args:
            name: Statistic name.
            key: Entity key.
            duration: Resolution of the reported bucket (default: the
                longest configured duration).

        Returns:
            StatSnapshot, or None if (name, key) was never recorded.
        """
        width = self._snapshot_duration(duration)
        async with self._storage.async_session() as session:
            latest = await session.get_latest(name, key)
            if latest is None:
                return None
            bucket = None
            if width is not None:
                start, _ = bucket_window(latest.recorded_at, width)
                bucket = await session.get_bucket(name, key, width, start)
        return _snapshot(latest, bucket)

    # --- Sync methods ---

    def record_sync(
        self,
        name: str,
        key: str,
        source: ValueSource,
        timestamp: float | None = None,
        durations: Sequence[float] | None = None,
    ) -> RecordResult:
        """Synchronous record for non-async contexts."""
        timestamp = now_ms() if timestamp is None else timestamp
        widths = self._durations(durations)
        with self._locks.hold((name, key)):
            with self._storage.session(write=True) as session:
                previous = session.get_latest(name, key)
                latest, result = resolve_record(previous, source, name, key, timestamp)
                session.put_latest(latest)
                for duration in widths:
                    fold(
                        session,
                        name,
                        key,
                        latest.value,
                        timestamp,
                        duration,
                        self._config.relative_accuracy,
                    )
        logger.debug(
            "Recorded %s[%s]=%s at %s (%s)",
            name,
            key,
            result.value,
            timestamp,
            result.status,
        )
        return result

    def query_sync(
        self,
        name: str,
        key: str,
        duration: float,
        range_start: float,
        range_end: float,
    ) -> QueryResult | None:
        """Synchronous query for non-async contexts."""
        with self._storage.session() as session:
            buckets = session.scan_buckets(name, key, duration, range_start, range_end)
        return summarize(buckets, self._config.relative_accuracy)

    def get_sync(
        self, name: str, key: str, duration: float | None = None
    ) -> StatSnapshot | None:
        """Synchronous get for non-async contexts."""
        width = self._snapshot_duration(duration)
        with self._storage.session() as session:
            latest = session.get_latest(name, key)
            if latest is None:
                return None
            bucket = None
            if width is not None:
                start, _ = bucket_window(latest.recorded_at, width)
                bucket = session.get_bucket(name, key, width, start)
        return _snapshot(latest, bucket)


def _snapshot(latest: LatestValue, bucket: Bucket | None) -> StatSnapshot:
    stat = None
    if bucket is not None:
        stat = Summary(
            count=bucket.count,
            sum=bucket.sum,
            min=bucket.min,
            max=bucket.max,
            p50=bucket.p50,
            p90=bucket.p90,
            p95=bucket.p95,
            p99=bucket.p99,
        )
    return StatSnapshot(
        name=latest.name,
        key=latest.key,
        value=latest.value,
        recorded_at=latest.recorded_at,
        stat=stat,
    )
