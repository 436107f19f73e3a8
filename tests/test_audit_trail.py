"""Tests for the audit trail recorded by the lending event handlers."""

from __future__ import annotations

from datetime import date

import pytest

from lending.domain.bus import EventBus
from lending.domain.errors import ConflictError
from lending.domain.events import BorrowRequestApproved
from lending.domain.handlers import HandlerRegistry
from lending.domain.models import AuditEntryType
from lending.repos.memory import (
    AuditTrailRepository,
    BorrowHistoryRepository,
    BorrowRequestRepository,
)
from lending.services.lifecycle import LendingService


@pytest.fixture()
def env():
    """Fresh bus + repos + registry + service for each test."""
    bus = EventBus()
    request_repo = BorrowRequestRepository()
    audit_repo = AuditTrailRepository()
    registry = HandlerRegistry(bus=bus, request_repo=request_repo, audit_repo=audit_repo)
    service = LendingService(
        request_repo=request_repo,
        history_repo=BorrowHistoryRepository(),
        bus=bus,
    )

    class Env:
        pass

    e = Env()
    e.bus = bus
    e.audit_repo = audit_repo
    e.registry = registry
    e.service = service
    return e


def _types(env, request_id):
    return [e.type for e in env.audit_repo.list_for_request(request_id)]


def test_submission_is_recorded_with_interval(env):
    request = env.service.submit("u1", "B1", date(2024, 1, 1), date(2024, 1, 5))

    entries = env.audit_repo.list_for_request(request.id)
    assert [e.type for e in entries] == [AuditEntryType.SUBMITTED]
    assert entries[0].payload == {
        "item_id": "B1",
        "user_id": "u1",
        "start": "2024-01-01",
        "end": "2024-01-05",
    }


def test_full_trail_for_approved_and_archived_request(env):
    request = env.service.submit("u1", "B1", date(2024, 1, 1), date(2024, 1, 5))
    env.service.approve(request.id)
    history = env.service.archive(request.id)
    env.service.archive(request.id)

    assert _types(env, request.id) == [
        AuditEntryType.SUBMITTED,
        AuditEntryType.APPROVED,
        AuditEntryType.ARCHIVED,
    ]
    archived = env.audit_repo.list_for_request(request.id)[-1]
    assert archived.payload == {"history_id": history.id}


def test_refused_approval_is_recorded_then_denial(env):
    first = env.service.submit("u1", "B1", date(2024, 1, 1), date(2024, 1, 5))
    second = env.service.submit("u2", "B1", date(2024, 1, 2), date(2024, 1, 3))
    env.service.approve(first.id)

    with pytest.raises(ConflictError):
        env.service.approve(second.id)
    env.service.deny(second.id)

    entries = env.audit_repo.list_for_request(second.id)
    assert [e.type for e in entries] == [
        AuditEntryType.SUBMITTED,
        AuditEntryType.APPROVAL_CONFLICT,
        AuditEntryType.DENIED,
    ]
    assert entries[1].payload["conflicting_request_ids"] == [first.id]


def test_events_for_unknown_requests_are_still_recorded(env):
    """Only submission needs the stored request; decisions are logged by id."""
    env.bus.publish(BorrowRequestApproved(request_id="ghost"))
    assert _types(env, "ghost") == [AuditEntryType.APPROVED]
