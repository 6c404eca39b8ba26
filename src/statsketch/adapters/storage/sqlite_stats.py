"""SQLite storage adapter for statistics."""

import sqlite3
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import aiosqlite

from statsketch.adapters.storage.sqlite_base import DEFAULT_TIMEOUT, SQLiteStorageBase
from statsketch.core.models import Bucket, LatestValue

_STATS_SCHEMA = """
CREATE TABLE IF NOT EXISTS stats (
    name TEXT NOT NULL,
    key TEXT NOT NULL,
    val REAL NOT NULL,
    recorded_at NUMERIC NOT NULL,
    PRIMARY KEY (name, key)
) WITHOUT ROWID;

CREATE TABLE IF NOT EXISTS stat_sketches (
    name TEXT NOT NULL,
    key TEXT NOT NULL,
    duration NUMERIC NOT NULL,
    start NUMERIC NOT NULL,
    "end" NUMERIC NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    sum REAL NOT NULL DEFAULT 0,
    min REAL NOT NULL DEFAULT 0,
    max REAL NOT NULL DEFAULT 0,
    p50 REAL NOT NULL DEFAULT 0,
    p90 REAL NOT NULL DEFAULT 0,
    p95 REAL NOT NULL DEFAULT 0,
    p99 REAL NOT NULL DEFAULT 0,
    sketch BLOB,
    PRIMARY KEY (name, key, duration, start)
) WITHOUT ROWID;
"""

_SELECT_LATEST = """
SELECT name, key, val, recorded_at FROM stats
WHERE name = ? AND key = ?
"""

_UPSERT_LATEST = """
INSERT INTO stats (name, key, val, recorded_at) VALUES (?, ?, ?, ?)
ON CONFLICT (name, key) DO UPDATE SET
    val = excluded.val,
    recorded_at = excluded.recorded_at
"""

_BUCKET_COLUMNS = """
name, key, duration, start, "end", count, sum, min, max, p50, p90, p95, p99, sketch
"""

_SELECT_BUCKET = f"""
SELECT {_BUCKET_COLUMNS} FROM stat_sketches
WHERE name = ? AND key = ? AND duration = ? AND start = ?
"""

_UPSERT_BUCKET = f"""
INSERT INTO stat_sketches ({_BUCKET_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (name, key, duration, start) DO UPDATE SET
    count = excluded.count,
    sum = excluded.sum,
    min = excluded.min,
    max = excluded.max,
    p50 = excluded.p50,
    p90 = excluded.p90,
    p95 = excluded.p95,
    p99 = excluded.p99,
    sketch = excluded.sketch
"""

_SCAN_BUCKETS = f"""
SELECT {_BUCKET_COLUMNS} FROM stat_sketches
WHERE name = ? AND key = ? AND duration = ? AND start >= ? AND "end" <= ?
ORDER BY start ASC
"""


def _latest_from_row(row: Any) -> LatestValue:
    return LatestValue(name=row[0], key=row[1], value=row[2], recorded_at=row[3])


def _latest_to_row(latest: LatestValue) -> tuple[Any, ...]:
    return (latest.name, latest.key, latest.value, latest.recorded_at)


def _bucket_from_row(row: Any) -> Bucket:
    return Bucket(
        name=row[0],
        key=row[1],
        duration=row[2],
        start=row[3],
        end=row[4],
        count=row[5],
        sum=row[6],
        min=row[7],
        max=row[8],
        p50=row[9],
        p90=row[10],
        p95=row[11],
        p99=row[12],
        sketch=row[13],
    )


def _bucket_to_row(bucket: Bucket) -> tuple[Any, ...]:
    return (
        bucket.name,
        bucket.key,
        bucket.duration,
        bucket.start,
        bucket.end,
        bucket.count,
        bucket.sum,
        bucket.min,
        bucket.max,
        bucket.p50,
        bucket.p90,
        bucket.p95,
        bucket.p99,
        bucket.sketch,
    )


class SQLiteStatsSession:
    """StatsSession bound to one sqlite3 connection and transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get_latest(self, name: str, key: str) -> LatestValue | None:
        row = self._conn.execute(_SELECT_LATEST, (name, key)).fetchone()
        return _latest_from_row(row) if row else None

    def put_latest(self, latest: LatestValue) -> None:
        self._conn.execute(_UPSERT_LATEST, _latest_to_row(latest))

    def get_bucket(
        self, name: str, key: str, duration: float, start: float
    ) -> Bucket | None:
        row = self._conn.execute(_SELECT_BUCKET, (name, key, duration, start)).fetchone()
        return _bucket_from_row(row) if row else None

    def put_bucket(self, bucket: Bucket) -> None:
        self._conn.execute(_UPSERT_BUCKET, _bucket_to_row(bucket))

    def scan_buckets(
        self,
        name: str,
        key: str,
        duration: float,
        range_start: float,
        range_end: float,
    ) -> list[Bucket]:
        cursor = self._conn.execute(
            _SCAN_BUCKETS, (name, key, duration, range_start, range_end)
        )
        return [_bucket_from_row(row) for row in cursor]


class AsyncSQLiteStatsSession:
    """AsyncStatsSession bound to one aiosqlite connection and transaction."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_latest(self, name: str, key: str) -> LatestValue | None:
        async with self._conn.execute(_SELECT_LATEST, (name, key)) as cursor:
            row = await cursor.fetchone()
        return _latest_from_row(row) if row else None

    async def put_latest(self, latest: LatestValue) -> None:
        await self._conn.execute(_UPSERT_LATEST, _latest_to_row(latest))

    async def get_bucket(
        self, name: str, key: str, duration: float, start: float
    ) -> Bucket | None:
        async with self._conn.execute(
            _SELECT_BUCKET, (name, key, duration, start)
        ) as cursor:
            row = await cursor.fetchone()
        return _bucket_from_row(row) if row else None

    async def put_bucket(self, bucket: Bucket) -> None:
        await self._conn.execute(_UPSERT_BUCKET, _bucket_to_row(bucket))

    async def scan_buckets(
        self,
        name: str,
        key: str,
        duration: float,
        range_start: float,
        range_end: float,
    ) -> list[Bucket]:
        async with self._conn.execute(
            _SCAN_BUCKETS, (name, key, duration, range_start, range_end)
        ) as cursor:
            return [_bucket_from_row(row) async for row in cursor]


# @tra: Adapter.SQLiteStorage.ImplementsStatsStoragePort
# @tra: Adapter.SQLiteStorage.PersistsAcrossInstances
class SQLiteStatsStorage(SQLiteStorageBase):
    """SQLite implementation of StatsStoragePort.

    Latest values live in the ``stats`` table and buckets in
    ``stat_sketches``. Write sessions run inside ``BEGIN IMMEDIATE``
    transactions, which serializes writers across connections and processes
    sharing the same database file. Uses WAL mode for file databases.

    Sync sessions use the standard sqlite3 module, async sessions use
    aiosqlite. For file-based databases, both share the same file.
    For :memory: databases, sync and async have separate in-memory DBs.
    """

    def __init__(self, db_path: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        super().__init__(db_path, _STATS_SCHEMA, timeout)

    @contextmanager
    def session(self, write: bool = False) -> Iterator[SQLiteStatsSession]:
        """Open a sync session inside a transaction.

        Commits on clean exit. Rolls back if an exception escapes or the
        commit itself fails, so the connection never stays mid-transaction.
        """
        with self.sync_connection() as conn:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield SQLiteStatsSession(conn)
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    @asynccontextmanager
    async def async_session(
        self, write: bool = False
    ) -> AsyncIterator[AsyncSQLiteStatsSession]:
        """Open an async session inside a transaction.

        Commits on clean exit. Rolls back if an exception escapes or the
        commit itself fails, so the connection never stays mid-transaction.
        """
        async with self.async_connection() as conn:
            await conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield AsyncSQLiteStatsSession(conn)
                await conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise

    # --- Inspection helpers ---

    def count_buckets_sync(self) -> int:
        """Return the number of stored buckets."""
        with self.sync_connection() as conn:
            row = conn.execute("SELECT COUNT(*) FROM stat_sketches").fetchone()
            return row[0] if row else 0

    async def count_buckets(self) -> int:
        """Return the number of stored buckets."""
        async with self.async_connection() as conn:
            async with conn.execute("SELECT COUNT(*) FROM stat_sketches") as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0
