"""Domain events emitted during the borrow-request lifecycle."""

from __future__ import annotations

from pydantic import BaseModel


class BorrowRequestSubmitted(BaseModel):
    """Fired when a new pending request is stored."""

    request_id: str


class BorrowRequestApproved(BaseModel):
    request_id: str


class BorrowRequestDenied(BaseModel):
    request_id: str


class ApprovalConflicted(BaseModel):
    """Fired when an approval was refused because of approved overlaps."""

    request_id: str
    conflicting_request_ids: list[str]


class BorrowArchived(BaseModel):
    """Fired when an approved request is copied into the borrow history."""

    request_id: str
    history_id: str
