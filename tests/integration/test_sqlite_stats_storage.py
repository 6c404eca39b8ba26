"""Tests for the SQLite statistics storage adapter."""

import sqlite3

import pytest

from statsketch.adapters.storage.sqlite_stats import SQLiteStatsStorage
from statsketch.core.bucketer import fold_value
from statsketch.core.models import Bucket, LatestValue
from statsketch.core.ports import AsyncStatsSession, StatsSession, StatsStoragePort
from statsketch.core.query import summarize

# All tests in this module are tier 2 (integration tests with file I/O)
pytestmark = pytest.mark.tier(2)


def _bucket(duration: int, timestamp: int, value: float = 1.0) -> Bucket:
    return fold_value(None, "s", "k", duration, timestamp, value, 0.01)


@pytest.fixture
def file_storage(stats_db_path: str) -> SQLiteStatsStorage:
    """File-backed storage in a temporary directory."""
    return SQLiteStatsStorage(stats_db_path)


@pytest.mark.tra("Adapter.SQLiteStorage.ImplementsStatsStoragePort")
class TestSQLiteStatsStorage:
    """Tests for SQLiteStatsStorage adapter."""

    @pytest.mark.storage
    def test_implements_stats_storage_port(self) -> None:
        """SQLiteStatsStorage must satisfy StatsStoragePort protocol."""
        assert isinstance(SQLiteStatsStorage(":memory:"), StatsStoragePort)

    @pytest.mark.storage
    def test_sessions_implement_session_ports(
        self, file_storage: SQLiteStatsStorage
    ) -> None:
        """Sync sessions satisfy StatsSession."""
        with file_storage.session() as session:
            assert isinstance(session, StatsSession)

    @pytest.mark.storage
    async def test_async_sessions_implement_session_port(
        self, file_storage: SQLiteStatsStorage
    ) -> None:
        """Async sessions satisfy AsyncStatsSession."""
        async with file_storage.async_session() as session:
            assert isinstance(session, AsyncStatsSession)

    @pytest.mark.storage
    def test_latest_upsert_sync(self, file_storage: SQLiteStatsStorage) -> None:
        """put_latest inserts then overwrites the (name, key) row."""
        with file_storage.session(write=True) as session:
            session.put_latest(LatestValue("s", "k", 1.0, 1000))
        with file_storage.session(write=True) as session:
            session.put_latest(LatestValue("s", "k", 2.5, 2000))

        with file_storage.session() as session:
            assert session.get_latest("s", "k") == LatestValue("s", "k", 2.5, 2000)
            assert session.get_latest("s", "missing") is None

    @pytest.mark.storage
    def test_bucket_round_trip_sync(self, file_storage: SQLiteStatsStorage) -> None:
        """A stored bucket reads back identically, sketch bytes included."""
        bucket = _bucket(1000, 1500, 3.0)

        with file_storage.session(write=True) as session:
            session.put_bucket(bucket)

        with file_storage.session() as session:
            assert session.get_bucket("s", "k", 1000, 1000) == bucket
            assert session.get_bucket("s", "k", 1000, 2000) is None

    @pytest.mark.storage
    def test_bucket_upsert_replaces_row(self, file_storage: SQLiteStatsStorage) -> None:
        """Upserting the same window replaces its row."""
        first = _bucket(1000, 0, 1.0)
        second = fold_value(first, "s", "k", 1000, 10, 2.0, 0.01)

        with file_storage.session(write=True) as session:
            session.put_bucket(first)
            session.put_bucket(second)

        assert file_storage.count_buckets_sync() == 1
        with file_storage.session() as session:
            assert session.get_bucket("s", "k", 1000, 0) == second

    @pytest.mark.storage
    def test_scan_filters_and_orders(self, file_storage: SQLiteStatsStorage) -> None:
        """scan_buckets keeps whole buckets inside the range, ordered by start."""
        with file_storage.session(write=True) as session:
            for timestamp in (3000, 1000, 0, 2000):
                session.put_bucket(_bucket(1000, timestamp))
            session.put_bucket(_bucket(60_000, 0))

        with file_storage.session() as session:
            buckets = session.scan_buckets("s", "k", 1000, 1000, 3000)

        assert [b.start for b in buckets] == [1000, 2000]

    @pytest.mark.storage
    def test_failed_write_session_rolls_back(
        self, file_storage: SQLiteStatsStorage
    ) -> None:
        """An exception escaping a write session rolls the transaction back."""
        with pytest.raises(RuntimeError):
            with file_storage.session(write=True) as session:
                session.put_latest(LatestValue("s", "k", 1.0, 1000))
                session.put_bucket(_bucket(1000, 0))
                raise RuntimeError("boom")

        with file_storage.session() as session:
            assert session.get_latest("s", "k") is None
        assert file_storage.count_buckets_sync() == 0

    @pytest.mark.storage
    async def test_async_round_trip(self, file_storage: SQLiteStatsStorage) -> None:
        """Async sessions write and read latest values and buckets."""
        bucket = _bucket(1000, 0)
        async with file_storage.async_session(write=True) as session:
            await session.put_latest(LatestValue("s", "k", 1.0, 1000))
            await session.put_bucket(bucket)

        async with file_storage.async_session() as session:
            assert await session.get_latest("s", "k") == LatestValue("s", "k", 1.0, 1000)
            assert await session.get_bucket("s", "k", 1000, 0) == bucket
            assert await session.scan_buckets("s", "k", 1000, 0, 1000) == [bucket]

    @pytest.mark.storage
    async def test_async_failed_session_rolls_back(
        self, file_storage: SQLiteStatsStorage
    ) -> None:
        """Async write sessions roll back on error."""
        with pytest.raises(RuntimeError):
            async with file_storage.async_session(write=True) as session:
                await session.put_bucket(_bucket(1000, 0))
                raise RuntimeError("boom")

        assert await file_storage.count_buckets() == 0

    @pytest.mark.storage
    async def test_sync_and_async_share_same_file_db(
        self, file_storage: SQLiteStatsStorage
    ) -> None:
        """Sync and async sessions share data for file-based databases."""
        with file_storage.session(write=True) as session:
            session.put_bucket(_bucket(1000, 0))
        async with file_storage.async_session(write=True) as session:
            await session.put_bucket(_bucket(1000, 1000))

        assert file_storage.count_buckets_sync() == 2
        assert await file_storage.count_buckets() == 2

    @pytest.mark.storage
    def test_storage_failure_propagates(self, stats_db_path: str) -> None:
        """Errors from sqlite3 reach the caller unchanged."""
        storage = SQLiteStatsStorage(stats_db_path)
        with storage.session(write=True) as session:
            session.put_latest(LatestValue("s", "k", 1.0, 1000))
        with storage.sync_connection() as conn:
            conn.execute("DROP TABLE stat_sketches")

        with pytest.raises(sqlite3.OperationalError):
            with storage.session(write=True) as session:
                session.put_bucket(_bucket(1000, 0))


@pytest.mark.tra("Adapter.SQLiteStorage.PersistsAcrossInstances")
class TestSQLiteStatsPersistence:
    """Data survives reopening a file database."""

    @pytest.mark.storage
    def test_new_instance_sees_existing_data(self, stats_db_path: str) -> None:
        """A second storage on the same file reads the first one's writes."""
        with SQLiteStatsStorage(stats_db_path).session(write=True) as session:
            session.put_latest(LatestValue("s", "k", 4.0, 1000))

        with SQLiteStatsStorage(stats_db_path).session() as session:
            assert session.get_latest("s", "k") == LatestValue("s", "k", 4.0, 1000)


class TestSQLiteMemoryDatabase:
    """Tests for :memory: databases."""

    @pytest.mark.storage
    async def test_memory_database_write_and_read(
        self, memory_sqlite_storage: SQLiteStatsStorage
    ) -> None:
        """In-memory database should persist data within same instance."""
        async with memory_sqlite_storage.async_session(write=True) as session:
            await session.put_latest(LatestValue("s", "k", 1.0, 1000))
        async with memory_sqlite_storage.async_session() as session:
            assert await session.get_latest("s", "k") is not None

    @pytest.mark.storage
    async def test_sync_and_async_memory_databases_are_separate(
        self, memory_sqlite_storage: SQLiteStatsStorage
    ) -> None:
        """Sync and async sessions use separate :memory: databases."""
        with memory_sqlite_storage.session(write=True) as session:
            session.put_bucket(_bucket(1000, 0))

        assert memory_sqlite_storage.count_buckets_sync() == 1
        assert await memory_sqlite_storage.count_buckets() == 0

    @pytest.mark.storage
    async def test_memory_database_close(
        self, memory_sqlite_storage: SQLiteStatsStorage
    ) -> None:
        """After close, the async :memory: database starts empty."""
        async with memory_sqlite_storage.async_session(write=True) as session:
            await session.put_bucket(_bucket(1000, 0))
        await memory_sqlite_storage.close()

        assert await memory_sqlite_storage.count_buckets() == 0

    @pytest.mark.storage
    def test_failed_commit_rolls_back(self) -> None:
        """A COMMIT that fails leaves no open transaction behind."""
        storage = SQLiteStatsStorage(":memory:")
        with storage.sync_connection() as conn:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.executescript(
                """
                CREATE TABLE parents (id INTEGER PRIMARY KEY);
                CREATE TABLE children (
                    parent_id INTEGER REFERENCES parents (id)
                        DEFERRABLE INITIALLY DEFERRED
                );
                """
            )

        try:
            # the deferred foreign key is only checked, and fails, at COMMIT
            with pytest.raises(sqlite3.IntegrityError):
                with storage.session(write=True) as session:
                    session.put_latest(LatestValue("s", "k", 1.0, 1000))
                    with storage.sync_connection() as conn:
                        conn.execute("INSERT INTO children (parent_id) VALUES (1)")

            with storage.session(write=True) as session:
                assert session.get_latest("s", "k") is None
                session.put_latest(LatestValue("s", "k", 2.0, 2000))
            with storage.session() as session:
                assert session.get_latest("s", "k") == LatestValue("s", "k", 2.0, 2000)
        finally:
            storage.close_sync()


@pytest.mark.tra("Core.Statistic.RoundTrip")
class TestSQLiteSketchRoundTrip:
    """Sketches reloaded from SQLite reproduce their stored quantiles."""

    @pytest.mark.storage
    def test_float_bucket_reloads_bit_for_bit(
        self, file_storage: SQLiteStatsStorage
    ) -> None:
        """A reloaded bucket decodes to exactly its stored p50..p99."""
        bucket = None
        for offset, value in enumerate([0.1, 1.9936, 2.5, 17.25, 0.003, 99.99]):
            bucket = fold_value(bucket, "s", "k", 1000, offset, value, 0.01)
        assert bucket is not None
        with file_storage.session(write=True) as session:
            session.put_bucket(bucket)

        with file_storage.session() as session:
            stored = session.get_bucket("s", "k", 1000, 0)
        assert stored is not None
        result = summarize([stored], 0.01)

        assert result is not None
        assert (
            result.aggregate.p50,
            result.aggregate.p90,
            result.aggregate.p95,
            result.aggregate.p99,
        ) == (stored.p50, stored.p90, stored.p95, stored.p99)
