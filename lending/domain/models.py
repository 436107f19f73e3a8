"""Domain models for the book lending system."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BorrowStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class AuditEntryType(StrEnum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DENIED = "denied"
    APPROVAL_CONFLICT = "approval_conflict"
    ARCHIVED = "archived"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class DateInterval(BaseModel):
    """Closed date range ``[start, end]``; a single-day borrow has start == end."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def _end_not_before_start(self) -> DateInterval:
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class BorrowRequest(BaseModel):
    id: str = Field(default_factory=_new_id)
    item_id: str
    user_id: str
    interval: DateInterval
    status: BorrowStatus = BorrowStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)
    decided_at: datetime | None = None


class BorrowHistory(BaseModel):
    """Immutable record of a completed borrow, keyed by its source request."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    request_id: str
    user_id: str
    item_id: str
    interval: DateInterval
    archived_at: datetime = Field(default_factory=_utcnow)


class AuditEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    request_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    type: AuditEntryType
    payload: dict = Field(default_factory=dict)


class Book(BaseModel):
    id: str
    title: str
    author: str


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class SubmitBorrowRequest(BaseModel):
    # Presence and date format are checked by the lifecycle so bad input is a 400.
    user_id: str | None = None
    item_id: str | None = None
    start_date: str | None = None
    end_date: str | None = None


class BorrowRequestOut(BaseModel):
    id: str
    item_id: str
    user_id: str
    book_title: str | None = None
    book_author: str | None = None
    start_date: date
    end_date: date
    status: BorrowStatus


class DecisionResponse(BaseModel):
    message: str
    request: BorrowRequest


class BorrowHistoryOut(BaseModel):
    id: str
    request_id: str
    item_id: str
    book_title: str | None = None
    start_date: date
    end_date: date


class TickResponse(BaseModel):
    today: date
    archived: list[str]
