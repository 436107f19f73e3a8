"""Borrow-request lifecycle: submit, approve, deny and archive."""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timezone

from dateutil.parser import isoparse

from lending.config import settings
from lending.domain.bus import EventBus
from lending.domain.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from lending.domain.events import (
    ApprovalConflicted,
    BorrowArchived,
    BorrowRequestApproved,
    BorrowRequestDenied,
    BorrowRequestSubmitted,
)
from lending.domain.models import (
    BorrowHistory,
    BorrowRequest,
    BorrowStatus,
    DateInterval,
)
from lending.repos.memory import BorrowHistoryRepository, BorrowRequestRepository
from lending.services import archiver
from lending.services.conflicts import find_conflict, find_conflicts

logger = logging.getLogger(__name__)


def _parse_date(value: date | str | None, field: str) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if value is None or isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return isoparse(value).date()
    except (ValueError, OverflowError) as exc:
        raise ValidationError(f"{field} is not an ISO date: {value!r}") from exc


def build_interval(start: date | str | None, end: date | str | None) -> DateInterval:
    """Validate both bounds and return the closed interval they describe."""
    start_date = _parse_date(start, "start date")
    end_date = _parse_date(end, "end date")
    if start_date is None or end_date is None:
        raise ValidationError("Start date and end date are required")
    if end_date < start_date:
        raise ValidationError(
            f"End date {end_date.isoformat()} is before start date {start_date.isoformat()}"
        )
    return DateInterval(start=start_date, end=end_date)


class LendingService:
    """Enforces the pending -> approved | denied state machine.

    Only ``approve`` claims the item, so it is the only operation that runs
    inside the item scope. Events are published after the scope is left.
    """

    def __init__(
        self,
        request_repo: BorrowRequestRepository,
        history_repo: BorrowHistoryRepository,
        bus: EventBus,
        lock_timeout: float | None = None,
    ) -> None:
        self.request_repo = request_repo
        self.history_repo = history_repo
        self.bus = bus
        if lock_timeout is None:
            lock_timeout = settings.lock_timeout_seconds
        self.lock_timeout = lock_timeout

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, request_id: str) -> BorrowRequest:
        request = self.request_repo.get(request_id)
        if request is None:
            raise NotFoundError(f"Borrow request {request_id} not found")
        return request

    def list_all(self) -> list[BorrowRequest]:
        return self.request_repo.list_all()

    def list_for_item(self, item_id: str) -> list[BorrowRequest]:
        return self.request_repo.list_for_item(item_id)

    def list_for_user(self, user_id: str) -> list[BorrowRequest]:
        return self.request_repo.list_for_user(user_id)

    def history_for_user(self, user_id: str) -> list[BorrowHistory]:
        return self.history_repo.list_for_user(user_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_pending(request: BorrowRequest) -> None:
        if request.status != BorrowStatus.PENDING:
            raise InvalidStateError(
                f"Borrow request {request.id} is already {request.status}"
            )

    def submit(
        self,
        user_id: str | None,
        item_id: str | None,
        start: date | str | None,
        end: date | str | None,
    ) -> BorrowRequest:
        """Create a pending request.

        The conflict check here runs outside the item scope and may be
        stale; it only turns away requests that are already doomed.
        """
        if not user_id or not item_id or start is None or end is None:
            raise ValidationError(
                "User ID, item ID, start date, and end date are required"
            )
        interval = build_interval(start, end)

        existing = find_conflict(self.request_repo.list_approved_for_item(item_id), interval)
        if existing is not None:
            logger.info(
                "Rejected submission for item %s: overlaps approved request %s",
                item_id,
                existing.id,
            )
            raise ConflictError(
                "Item is already borrowed during the requested period",
                conflicting_request_id=existing.id,
            )

        request = BorrowRequest(item_id=item_id, user_id=user_id, interval=interval)
        self.request_repo.add(request)
        logger.info(
            "Submitted request %s for item %s by user %s (%s..%s)",
            request.id,
            item_id,
            user_id,
            interval.start,
            interval.end,
        )
        self.bus.publish(BorrowRequestSubmitted(request_id=request.id))
        return request

    def approve(
        self, request_id: str, cancel: threading.Event | None = None
    ) -> BorrowRequest:
        """Approve a pending request unless an approved booking overlaps it.

        The status check, the conflict scan and the commit run as one unit
        inside the item scope. On conflict the request stays pending.
        """
        request = self.get(request_id)
        item_id = request.item_id
        # Decided requests fail fast instead of queueing behind another approval.
        self._ensure_pending(request)

        conflicts: list[BorrowRequest] = []
        approved: BorrowRequest | None = None
        with self.request_repo.item_scope(item_id, self.lock_timeout, cancel):
            request = self.get(request_id)
            self._ensure_pending(request)
            conflicts = find_conflicts(
                self.request_repo.list_approved_for_item(item_id), request.interval
            )
            if not conflicts:
                approved = self.request_repo.compare_and_set_status(
                    request_id,
                    BorrowStatus.PENDING,
                    BorrowStatus.APPROVED,
                    datetime.now(timezone.utc),
                )

        if conflicts:
            conflicting_ids = [c.id for c in conflicts]
            logger.warning(
                "Approval of %s refused: item %s already booked by %s",
                request_id,
                item_id,
                ", ".join(conflicting_ids),
            )
            self.bus.publish(
                ApprovalConflicted(
                    request_id=request_id, conflicting_request_ids=conflicting_ids
                )
            )
            raise ConflictError(
                "Item is already borrowed during the requested period",
                conflicting_request_id=conflicting_ids[0],
            )
        if approved is None:
            # Denied between the status check and the commit.
            raise InvalidStateError(
                f"Borrow request {request_id} is already {request.status}"
            )

        logger.info("Approved request %s for item %s", request_id, item_id)
        self.bus.publish(BorrowRequestApproved(request_id=request_id))
        return approved

    def deny(self, request_id: str) -> BorrowRequest:
        request = self.get(request_id)
        denied = self.request_repo.compare_and_set_status(
            request_id,
            BorrowStatus.PENDING,
            BorrowStatus.DENIED,
            datetime.now(timezone.utc),
        )
        if denied is None:
            raise InvalidStateError(
                f"Borrow request {request_id} is already {request.status}"
            )
        logger.info("Denied request %s for item %s", request_id, request.item_id)
        self.bus.publish(BorrowRequestDenied(request_id=request_id))
        return denied

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _archive_request(self, request: BorrowRequest) -> tuple[BorrowHistory, bool]:
        history, created = self.history_repo.add_once(archiver.archive(request))
        if created:
            logger.info("Archived request %s as history %s", request.id, history.id)
            self.bus.publish(
                BorrowArchived(request_id=request.id, history_id=history.id)
            )
        return history, created

    def archive(self, request_id: str) -> BorrowHistory:
        """Copy an approved request into the history; repeat calls return the same record."""
        history, _ = self._archive_request(self.get(request_id))
        return history

    def archive_elapsed(self, today: date) -> list[BorrowHistory]:
        """Archive every approved request whose interval ended before *today*.

        Returns only the records created by this call.
        """
        created_records = []
        for request in self.request_repo.list_all():
            if request.status != BorrowStatus.APPROVED:
                continue
            if not archiver.is_elapsed(request, today):
                continue
            history, created = self._archive_request(request)
            if created:
                created_records.append(history)
        return created_records
