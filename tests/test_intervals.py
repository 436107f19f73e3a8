"""Tests for the inclusive interval overlap comparison."""

from datetime import date

import pytest

from lending.domain.models import DateInterval
from lending.services.intervals import overlaps


def _days(start: int, end: int) -> DateInterval:
    return DateInterval(start=date(2024, 1, start), end=date(2024, 1, end))


def test_shared_boundary_day_overlaps():
    """A borrow ending the day another begins is a conflict."""
    assert overlaps(_days(1, 5), _days(5, 10)) is True


def test_adjacent_days_do_not_overlap():
    assert overlaps(_days(1, 5), _days(6, 10)) is False


@pytest.mark.parametrize(
    "a, b",
    [
        ((1, 5), (5, 10)),
        ((1, 5), (6, 10)),
        ((1, 10), (3, 4)),
        ((3, 3), (1, 2)),
        ((3, 3), (3, 3)),
        ((2, 8), (1, 3)),
    ],
)
def test_overlap_is_symmetric(a, b):
    x, y = _days(*a), _days(*b)
    assert overlaps(x, y) == overlaps(y, x)


def test_containment_overlaps():
    assert overlaps(_days(1, 10), _days(3, 4)) is True


def test_single_day_interval_overlaps_itself():
    day = _days(7, 7)
    assert overlaps(day, day) is True


def test_interval_rejects_end_before_start():
    with pytest.raises(ValueError):
        DateInterval(start=date(2024, 5, 10), end=date(2024, 5, 5))
