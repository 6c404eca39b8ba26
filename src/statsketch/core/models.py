"""Core domain models for time-bucketed statistics."""

from dataclasses import dataclass, field
from enum import StrEnum


@dataclass(frozen=True)
class LatestValue:
    """The current value of a statistic.

    Attributes:
        name: Statistic name (e.g., post.num_likes).
        key: Entity the statistic belongs to (e.g., a post id).
        value: The most recently recorded value.
        recorded_at: Epoch milliseconds of the most recent record.
    """

    name: str
    key: str
    value: float
    recorded_at: float


@dataclass(frozen=True)
class BucketSample:
    """Stored statistics of a single bucket, without its sketch."""

    start: float
    end: float
    count: int
    sum: float
    min: float
    max: float
    p50: float
    p90: float
    p95: float
    p99: float


@dataclass(frozen=True)
class Bucket:
    """Aggregate of every observation of (name, key) inside one time window.

    Attributes:
        name: Statistic name.
        key: Entity key.
        duration: Window width in milliseconds.
        start: Inclusive window start (epoch milliseconds).
        end: Exclusive window end, always start + duration.
        count: Exact number of observations folded in.
        sum: Exact sum of the observations.
        min: Exact minimum observation.
        max: Exact maximum observation.
        p50, p90, p95, p99: Sketch quantile estimates as of the last fold.
        sketch: Serialized quantile sketch.
    """

    name: str
    key: str
    duration: float
    start: float
    end: float
    count: int
    sum: float
    min: float
    max: float
    p50: float
    p90: float
    p95: float
    p99: float
    sketch: bytes = field(repr=False)

    def sample(self) -> BucketSample:
        """Return the stored statistics of this bucket as a BucketSample."""
        return BucketSample(
            start=self.start,
            end=self.end,
            count=self.count,
            sum=self.sum,
            min=self.min,
            max=self.max,
            p50=self.p50,
            p90=self.p90,
            p95=self.p95,
            p99=self.p99,
        )


@dataclass(frozen=True)
class Summary:
    """Aggregate statistic: exact count/sum/min/max, approximate quantiles."""

    count: int
    sum: float
    min: float
    max: float
    p50: float
    p90: float
    p95: float
    p99: float


@dataclass(frozen=True)
class QueryResult:
    """Result of a range query.

    Attributes:
        aggregate: Statistic merged over every matching bucket.
        samples: Per-bucket statistics ordered by window start.
    """

    aggregate: Summary
    samples: list[BucketSample] = field(default_factory=list)


class RecordStatus(StrEnum):
    """Outcome of recording a value."""

    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True)
class RecordResult:
    """Result of recording a value.

    Attributes:
        status: CREATED for the first record of (name, key), UPDATED otherwise.
        value: The resolved value that was written.
        recorded_at: The timestamp written for CREATED; the previous
            recorded timestamp for UPDATED.
    """

    status: RecordStatus
    value: float
    recorded_at: float


@dataclass(frozen=True)
class StatSnapshot:
    """Latest value of a statistic together with its current bucket summary."""

    name: str
    key: str
    value: float
    recorded_at: float
    stat: Summary | None = None
