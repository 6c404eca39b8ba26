"""Fold observations into time buckets."""

import logging

from statsketch.core.durations import bucket_window
from statsketch.core.models import Bucket
from statsketch.core.ports import AsyncStatsSession, StatsSession
from statsketch.core.statistic import CompositeStatistic

logger = logging.getLogger(__name__)


def fold_value(
    existing: Bucket | None,
    name: str,
    key: str,
    duration: float,
    timestamp: float,
    value: float,
    relative_accuracy: float,
) -> Bucket:
    """Fold one observation into its bucket.

    Args:
        existing: The stored bucket for the observation's window, if any.
        name: Statistic name.
        key: Entity key.
        duration: Bucket width in milliseconds.
        timestamp: Epoch milliseconds of the observation.
        value: Observed value.
        relative_accuracy: Relative accuracy of the bucket sketch.

    Returns:
        The bucket row to upsert, with quantiles recomputed.
    """
    start, end = bucket_window(timestamp, duration)
    if existing is None:
        stat = CompositeStatistic.empty(relative_accuracy)
    else:
        if (existing.name, existing.key, existing.duration, existing.start) != (
            name,
            key,
            duration,
            start,
        ):
            raise ValueError(
                f"cannot fold timestamp {timestamp} into bucket "
                f"{existing.name}[{existing.key}] {existing.duration}@{existing.start}"
            )
        stat = CompositeStatistic.from_bucket(existing, relative_accuracy)
    stat.add(value)
    return stat.to_bucket(name, key, duration, start, end)


def fold(
    session: StatsSession,
    name: str,
    key: str,
    value: float,
    timestamp: float,
    duration: float,
    relative_accuracy: float,
) -> Bucket:
    """Load, fold and upsert the bucket of one observation."""
    start, _ = bucket_window(timestamp, duration)
    existing = session.get_bucket(name, key, duration, start)
    bucket = fold_value(
        existing, name, key, duration, timestamp, value, relative_accuracy
    )
    session.put_bucket(bucket)
    logger.debug(
        "Folded %s into %s[%s] duration=%s start=%s count=%d",
        value,
        name,
        key,
        duration,
        start,
        bucket.count,
    )
    return bucket


async def fold_async(
    session: AsyncStatsSession,
    name: str,
    key: str,
    value: float,
    timestamp: float,
    duration: float,
    relative_accuracy: float,
) -> Bucket:
    """Async version of fold()."""
    start, _ = bucket_window(timestamp, duration)
    existing = await session.get_bucket(name, key, duration, start)
    bucket = fold_value(
        existing, name, key, duration, timestamp, value, relative_accuracy
    )
    await session.put_bucket(bucket)
    logger.debug(
        "Folded %s into %s[%s] duration=%s start=%s count=%d",
        value,
        name,
        key,
        duration,
        start,
        bucket.count,
    )
    return bucket
