"""Merge a range of buckets into one aggregate."""

from collections.abc import Iterable

from statsketch.core.models import Bucket, QueryResult
from statsketch.core.statistic import CompositeStatistic


def summarize(
    buckets: Iterable[Bucket], relative_accuracy: float
) -> QueryResult | None:
    """Merge buckets into an aggregate plus their per-bucket samples.

    Args:
        buckets: Buckets of one (name, key, duration), ordered by start.
        relative_accuracy: Relative accuracy the bucket sketches were built with.

    Returns:
        QueryResult, or None when there are no buckets.
    """
    aggregate: CompositeStatistic | None = None
    samples = []
    for bucket in buckets:
        stat = CompositeStatistic.from_bucket(bucket, relative_accuracy)
        if aggregate is None:
            aggregate = stat
        else:
            aggregate.merge(stat)
        samples.append(bucket.sample())

    if aggregate is None:
        return None
    return QueryResult(aggregate=aggregate.summary(), samples=samples)
