"""Resolve a record call against the previously recorded value."""

import logging

from statsketch.core.exceptions import TimelineViolationError
from statsketch.core.models import LatestValue, RecordResult, RecordStatus
from statsketch.core.updates import ValueSource

logger = logging.getLogger(__name__)


def resolve_record(
    previous: LatestValue | None,
    source: ValueSource,
    name: str,
    key: str,
    timestamp: float,
) -> tuple[LatestValue, RecordResult]:
    """Compute the latest value to write and the result to report.

    Args:
        previous: Currently stored latest value of (name, key), if any.
        source: Fixed value or updater of the previous value.
        name: Statistic name.
        key: Entity key.
        timestamp: Epoch milliseconds of the new record.

    Returns:
        Tuple of (new latest value, record result). For an update, the
        result carries the previous recorded timestamp.

    Raises:
        TimelineViolationError: If timestamp does not come strictly after
            previous.recorded_at.
    """
    if previous is not None and previous.recorded_at >= timestamp:
        logger.warning(
            "Rejected record of %s[%s] at %s: already recorded at %s",
            name,
            key,
            timestamp,
            previous.recorded_at,
        )
        raise TimelineViolationError(name, key, previous.recorded_at, timestamp)

    value = source.resolve(previous)
    latest = LatestValue(name=name, key=key, value=value, recorded_at=timestamp)
    if previous is None:
        return latest, RecordResult(
            status=RecordStatus.CREATED, value=value, recorded_at=timestamp
        )
    return latest, RecordResult(
        status=RecordStatus.UPDATED, value=value, recorded_at=previous.recorded_at
    )
