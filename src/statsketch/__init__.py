"""statsketch: per-entity statistics with time-bucketed quantile sketches."""

from statsketch.adapters.storage import InMemoryStatsStorage, SQLiteStatsStorage
from statsketch.core.config import StatStoreConfig
from statsketch.core.durations import (
    DAY,
    DEFAULT_DURATIONS,
    HOUR,
    MINUTE,
    MONTH,
    SECOND,
    WEEK,
    YEAR,
    bucket_window,
)
from statsketch.core.exceptions import (
    SketchDecodeError,
    StatsError,
    TimelineViolationError,
)
from statsketch.core.models import (
    Bucket,
    BucketSample,
    LatestValue,
    QueryResult,
    RecordResult,
    RecordStatus,
    StatSnapshot,
    Summary,
)
from statsketch.core.ports import AsyncStatsSession, StatsSession, StatsStoragePort
from statsketch.core.store import StatStore
from statsketch.core.updates import Derived, Fixed, derived, fixed, increment

__all__ = [
    "DAY",
    "DEFAULT_DURATIONS",
    "HOUR",
    "MINUTE",
    "MONTH",
    "SECOND",
    "WEEK",
    "YEAR",
    "AsyncStatsSession",
    "Bucket",
    "BucketSample",
    "Derived",
    "Fixed",
    "InMemoryStatsStorage",
    "LatestValue",
    "QueryResult",
    "RecordResult",
    "RecordStatus",
    "SQLiteStatsStorage",
    "SketchDecodeError",
    "StatSnapshot",
    "StatStore",
    "StatStoreConfig",
    "StatsError",
    "StatsSession",
    "StatsStoragePort",
    "Summary",
    "TimelineViolationError",
    "bucket_window",
    "derived",
    "fixed",
    "increment",
]
