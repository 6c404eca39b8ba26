"""Storage adapters implementing core ports."""

from statsketch.adapters.storage.in_memory import InMemoryStatsStorage
from statsketch.adapters.storage.sqlite_stats import SQLiteStatsStorage

__all__ = [
    "InMemoryStatsStorage",
    "SQLiteStatsStorage",
]
