"""Value sources for recording a statistic.

A record call takes either a fixed value or a function of the previously
recorded value. Both are explicit variants sharing ``resolve(previous)``.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass

from statsketch.core.models import LatestValue

Updater = Callable[[LatestValue | None], float]


def _checked(value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"statistic values must be finite, got {value}")
    return value


@dataclass(frozen=True)
class Fixed:
    """A literal value, independent of the previous one."""

    value: float

    def resolve(self, previous: LatestValue | None) -> float:
        return _checked(self.value)


@dataclass(frozen=True)
class Derived:
    """A value computed from the previously recorded value.

    ``compute`` receives None when the statistic has never been recorded.
    """

    compute: Updater

    def resolve(self, previous: LatestValue | None) -> float:
        return _checked(self.compute(previous))


ValueSource = Fixed | Derived


def fixed(value: float) -> Fixed:
    """Record exactly ``value``."""
    return Fixed(value)


def derived(compute: Updater) -> Derived:
    """Record ``compute(previous)``."""
    return Derived(compute)


def increment(delta: float = 1.0) -> Derived:
    """Record the previous value plus ``delta``, starting from zero."""

    def _add(previous: LatestValue | None) -> float:
        return (previous.value if previous is not None else 0.0) + delta

    return Derived(_add)
