"""Exceptions raised by statsketch."""


class StatsError(Exception):
    """Base class for statsketch errors."""


class TimelineViolationError(StatsError, ValueError):
    """A record timestamp does not advance past the stored one."""

    def __init__(
        self, name: str, key: str, previous: float, timestamp: float
    ) -> None:
        self.name = name
        self.key = key
        self.previous = previous
        self.timestamp = timestamp
        super().__init__(
            f"timestamp {timestamp} for {name}[{key}] is not after "
            f"the recorded timestamp {previous}"
        )


class SketchDecodeError(StatsError):
    """Stored sketch bytes could not be deserialized."""

    def __init__(self, message: str, bucket: tuple[object, ...] | None = None) -> None:
        self.bucket = bucket
        if bucket is not None:
            message = f"{message} (bucket {bucket})"
        super().__init__(message)
