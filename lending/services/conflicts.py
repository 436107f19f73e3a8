"""Service for detecting conflicts between a candidate interval and approved bookings."""

from __future__ import annotations

from typing import Iterable

from lending.domain.models import BorrowRequest, BorrowStatus, DateInterval
from lending.services.intervals import overlaps


def find_conflicts(
    requests: Iterable[BorrowRequest],
    interval: DateInterval,
    exclude_request_id: str | None = None,
) -> list[BorrowRequest]:
    """Return approved requests whose interval overlaps *interval*.

    Pending and denied requests never conflict. The caller passes the
    requests of a single item.
    """
    return [
        request
        for request in requests
        if request.status == BorrowStatus.APPROVED
        and request.id != exclude_request_id
        and overlaps(request.interval, interval)
    ]


def find_conflict(
    requests: Iterable[BorrowRequest],
    interval: DateInterval,
    exclude_request_id: str | None = None,
) -> BorrowRequest | None:
    """Return the first conflicting approved request, or None."""
    conflicts = find_conflicts(requests, interval, exclude_request_id)
    return conflicts[0] if conflicts else None
