"""Conversion of completed approved borrows into history records."""

from __future__ import annotations

from datetime import date

from lending.domain.errors import InvalidStateError
from lending.domain.models import BorrowHistory, BorrowRequest, BorrowStatus


def archive(request: BorrowRequest) -> BorrowHistory:
    """Build the history record for an approved request.

    The request itself is left untouched and stays in the store as the
    audit copy. Uniqueness per request is enforced by the history store.
    """
    if request.status != BorrowStatus.APPROVED:
        raise InvalidStateError(
            f"Only approved requests can be archived; request {request.id} is {request.status}"
        )
    return BorrowHistory(
        request_id=request.id,
        user_id=request.user_id,
        item_id=request.item_id,
        interval=request.interval,
    )


def is_elapsed(request: BorrowRequest, today: date) -> bool:
    """True once the last borrowed day is strictly before *today*."""
    return request.interval.end < today
