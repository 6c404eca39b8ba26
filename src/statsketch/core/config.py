"""Configuration for StatStore."""

from dataclasses import dataclass

from statsketch.core.durations import DEFAULT_DURATIONS

DEFAULT_RELATIVE_ACCURACY = 0.01


def validate_durations(durations: tuple[float, ...]) -> None:
    """Raise ValueError unless every duration is positive and unique."""
    for duration in durations:
        if duration <= 0:
            raise ValueError(f"durations must be positive, got {duration}")
    if len(set(durations)) != len(durations):
        raise ValueError(f"durations must be unique, got {list(durations)}")


@dataclass(frozen=True)
class StatStoreConfig:
    """Settings for a StatStore.

    Attributes:
        durations: Bucket widths (milliseconds) every record fans out to.
        relative_accuracy: Relative accuracy of newly created sketches.
    """

    durations: tuple[float, ...] = DEFAULT_DURATIONS
    relative_accuracy: float = DEFAULT_RELATIVE_ACCURACY

    def __post_init__(self) -> None:
        object.__setattr__(self, "durations", tuple(self.durations))
        validate_durations(self.durations)
        if not 0 < self.relative_accuracy < 1:
            raise ValueError(
                f"relative_accuracy must be in (0, 1), got {self.relative_accuracy}"
            )

    @property
    def longest_duration(self) -> float | None:
        """The widest configured duration, or None when none are configured."""
        return max(self.durations) if self.durations else None
