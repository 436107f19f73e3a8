"""Lending event handlers that record the audit trail, wired up at application startup."""

from __future__ import annotations

import logging

from lending.domain.bus import EventBus
from lending.domain.events import (
    ApprovalConflicted,
    BorrowArchived,
    BorrowRequestApproved,
    BorrowRequestDenied,
    BorrowRequestSubmitted,
)
from lending.domain.models import AuditEntry, AuditEntryType
from lending.repos.memory import AuditTrailRepository, BorrowRequestRepository

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires lending-event handlers to the bus with access to the repositories."""

    def __init__(
        self,
        bus: EventBus,
        request_repo: BorrowRequestRepository,
        audit_repo: AuditTrailRepository,
    ) -> None:
        self.bus = bus
        self.request_repo = request_repo
        self.audit_repo = audit_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(BorrowRequestSubmitted, self.on_submitted)
        self.bus.subscribe(BorrowRequestApproved, self.on_approved)
        self.bus.subscribe(BorrowRequestDenied, self.on_denied)
        self.bus.subscribe(ApprovalConflicted, self.on_approval_conflicted)
        self.bus.subscribe(BorrowArchived, self.on_archived)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_submitted(self, event: BorrowRequestSubmitted) -> None:
        stored = self.request_repo.get(event.request_id)
        if stored is None:
            return

        self.audit_repo.add(
            AuditEntry(
                request_id=event.request_id,
                type=AuditEntryType.SUBMITTED,
                payload={
                    "item_id": stored.item_id,
                    "user_id": stored.user_id,
                    "start": stored.interval.start.isoformat(),
                    "end": stored.interval.end.isoformat(),
                },
            )
        )

    def on_approved(self, event: BorrowRequestApproved) -> None:
        self.audit_repo.add(
            AuditEntry(request_id=event.request_id, type=AuditEntryType.APPROVED)
        )

    def on_denied(self, event: BorrowRequestDenied) -> None:
        self.audit_repo.add(
            AuditEntry(request_id=event.request_id, type=AuditEntryType.DENIED)
        )

    def on_approval_conflicted(self, event: ApprovalConflicted) -> None:
        self.audit_repo.add(
            AuditEntry(
                request_id=event.request_id,
                type=AuditEntryType.APPROVAL_CONFLICT,
                payload={"conflicting_request_ids": event.conflicting_request_ids},
            )
        )

    def on_archived(self, event: BorrowArchived) -> None:
        self.audit_repo.add(
            AuditEntry(
                request_id=event.request_id,
                type=AuditEntryType.ARCHIVED,
                payload={"history_id": event.history_id},
            )
        )
        logger.debug("Audit trail updated for archived request %s", event.request_id)
