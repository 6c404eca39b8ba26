"""BDD step definitions for the likes-per-second feature."""

from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when

from statsketch import (
    SECOND,
    QueryResult,
    SQLiteStatsStorage,
    StatStore,
    TimelineViolationError,
)

POST = "cbe563cb-f0fe-476a-9342-d272b9e51325"


def _numbers(text: str) -> list[float]:
    return [float(part) for part in text.split(",")]


@dataclass
class LikesContext:
    """State shared between steps of one scenario."""

    store: StatStore | None = None
    storage: SQLiteStatsStorage | None = None
    timestamps: list[int] = field(default_factory=list)
    error: Exception | None = None
    result: QueryResult | None = None


@pytest.fixture
def ctx():
    """Fresh scenario context for each test."""
    context = LikesContext()
    yield context
    if context.storage is not None:
        context.storage.close_sync()


@given("a statistics store backed by a SQLite file")
def step_store(ctx: LikesContext, stats_db_path: str) -> None:
    ctx.storage = SQLiteStatsStorage(stats_db_path)
    ctx.store = StatStore(ctx.storage)


@when(parsers.parse("the post receives likes {deltas} one second apart"))
def step_likes(ctx: LikesContext, like, start: int, deltas: str) -> None:
    for offset, delta in enumerate(_numbers(deltas)):
        timestamp = start + offset * 1000
        like(ctx.store, POST, delta, timestamp)
        ctx.timestamps.append(timestamp)


@when("a like arrives at the first like's timestamp")
def step_late_like(ctx: LikesContext, like) -> None:
    try:
        like(ctx.store, POST, 1, ctx.timestamps[0])
    except TimelineViolationError as exc:
        ctx.error = exc


def _query(ctx: LikesContext, start: int, seconds: int) -> QueryResult | None:
    return ctx.store.query_sync(
        "post.likes_per_second", POST, SECOND, start, start + seconds * 1000
    )


@then(parsers.parse("the likes_per_second query over {seconds:d} seconds has {n:d} buckets"))
def step_bucket_count(ctx: LikesContext, start: int, seconds: int, n: int) -> None:
    ctx.result = _query(ctx, start, seconds)
    assert ctx.result is not None
    assert len(ctx.result.samples) == n


@then(parsers.parse("the likes_per_second query over {seconds:d} seconds has no data"))
def step_no_data(ctx: LikesContext, start: int, seconds: int) -> None:
    assert _query(ctx, start, seconds) is None


@then(parsers.parse("the bucket counts are {counts}"))
def step_counts(ctx: LikesContext, counts: str) -> None:
    assert [s.count for s in ctx.result.samples] == _numbers(counts)


@then(parsers.parse("the bucket sums are {sums}"))
def step_sums(ctx: LikesContext, sums: str) -> None:
    assert [s.sum for s in ctx.result.samples] == _numbers(sums)


@then(
    parsers.parse(
        "the aggregate has count {count:d}, sum {total:g}, min {low:g} and max {high:g}"
    )
)
def step_aggregate(
    ctx: LikesContext, count: int, total: float, low: float, high: float
) -> None:
    aggregate = ctx.result.aggregate
    assert (aggregate.count, aggregate.sum, aggregate.min, aggregate.max) == (
        count,
        total,
        low,
        high,
    )


@then(parsers.parse("the aggregate p50 is about {value:g}"))
def step_p50(ctx: LikesContext, value: float) -> None:
    assert ctx.result.aggregate.p50 == pytest.approx(value, rel=0.011)


@then(parsers.parse("the latest num_likes value is {value:g}"))
def step_latest(ctx: LikesContext, value: float) -> None:
    snapshot = ctx.store.get_sync("post.num_likes", POST)
    assert snapshot is not None
    assert snapshot.value == value


@then(parsers.parse("the num_likes summary has count {count:d} and sum {total:g}"))
def step_summary(ctx: LikesContext, count: int, total: float) -> None:
    snapshot = ctx.store.get_sync("post.num_likes", POST)
    assert snapshot is not None and snapshot.stat is not None
    assert (snapshot.stat.count, snapshot.stat.sum) == (count, total)


@then("the like is rejected as a timeline violation")
def step_rejected(ctx: LikesContext) -> None:
    assert isinstance(ctx.error, TimelineViolationError)
