"""Overlap comparison for closed date intervals."""

from __future__ import annotations

from lending.domain.models import DateInterval


def overlaps(a: DateInterval, b: DateInterval) -> bool:
    """Return True when *a* and *b* share at least one day.

    Bounds are inclusive: a borrow ending on the day another begins is a
    conflict.
    """
    return a.start <= b.end and b.start <= a.end
