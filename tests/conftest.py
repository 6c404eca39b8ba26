"""Shared test fixtures for all test modules."""

from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest

from statsketch import (
    SECOND,
    InMemoryStatsStorage,
    SQLiteStatsStorage,
    StatStore,
    StatStoreConfig,
    fixed,
    increment,
)

# 2025-03-01 12:00:00 UTC in epoch milliseconds
START = 1_740_830_400_000


@pytest.fixture
def start() -> int:
    """A second-aligned epoch millisecond timestamp to anchor timelines."""
    return START


@pytest.fixture
def stats_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for statistics storage tests."""
    return str(tmp_path / "stats.db")


@pytest.fixture
async def memory_sqlite_storage() -> AsyncGenerator[SQLiteStatsStorage]:
    """In-memory SQLite storage with proper cleanup."""
    storage = SQLiteStatsStorage(":memory:")
    yield storage
    await storage.close()
    storage.close_sync()


@pytest.fixture
def in_memory_store() -> StatStore:
    """StatStore over an empty InMemoryStatsStorage."""
    return StatStore(InMemoryStatsStorage())


@pytest.fixture
def sqlite_store(stats_db_path: str) -> Generator[StatStore]:
    """StatStore over a file-backed SQLite database."""
    storage = SQLiteStatsStorage(stats_db_path)
    yield StatStore(storage)
    storage.close_sync()


@pytest.fixture
def second_only() -> StatStoreConfig:
    """Config fanning out to one-second buckets only."""
    return StatStoreConfig(durations=(SECOND,))


@pytest.fixture
def like():
    """Factory recording a like delta and the resulting likes-per-second rate.

    Mirrors how callers use the previous recorded timestamp returned by an
    update to derive a rate statistic.
    """

    def _like(store: StatStore, post: str, delta: float, now: float) -> None:
        result = store.record_sync("post.num_likes", post, increment(delta), now)
        if result.status == "updated":
            elapsed = (now - result.recorded_at) / 1000
            store.record_sync("post.likes_per_second", post, fixed(delta / elapsed), now)

    return _like
