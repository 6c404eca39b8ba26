"""Time resolutions and bucket window arithmetic.

All timestamps and durations are Unix epoch milliseconds.
"""

import math
import time

SECOND = 1000
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY
MONTH = 30 * DAY
YEAR = 365 * DAY

DEFAULT_DURATIONS: tuple[int, ...] = (SECOND, MINUTE, HOUR, DAY, WEEK, MONTH, YEAR)


def now_ms() -> int:
    """Return the current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def bucket_window(timestamp: float, duration: float) -> tuple[float, float]:
    """Return the (start, end) window of the bucket containing timestamp.

    Args:
        timestamp: Epoch milliseconds of the observation.
        duration: Bucket width in milliseconds. Must be positive.

    Returns:
        Tuple of (start, end) where start = floor(timestamp / duration) * duration
        and end = start + duration.
    """
    if duration <= 0:
        raise ValueError(f"duration must be positive, got {duration}")
    start = math.floor(timestamp / duration) * duration
    return start, start + duration
