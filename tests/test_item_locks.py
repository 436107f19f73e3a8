"""Tests for the per-item lock table and store compare-and-set."""

from __future__ import annotations

import threading
from datetime import date, datetime, timezone

import pytest

from lending.domain.errors import OperationCancelledError, StorageError
from lending.domain.models import BorrowRequest, BorrowStatus, DateInterval
from lending.repos.memory import BorrowRequestRepository, ItemLockTable


def test_hold_marks_item_as_held_and_releases():
    table = ItemLockTable()
    with table.hold("B1", timeout=1.0):
        assert table.is_held("B1")
        assert not table.is_held("B2")
    assert not table.is_held("B1")


def test_hold_releases_on_exception():
    table = ItemLockTable()
    with pytest.raises(RuntimeError):
        with table.hold("B1", timeout=1.0):
            raise RuntimeError("boom")
    assert not table.is_held("B1")


def test_hold_times_out_with_storage_error():
    table = ItemLockTable()
    held = threading.Event()
    release = threading.Event()

    def owner():
        with table.hold("B1", timeout=1.0):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=owner)
    thread.start()
    held.wait(5)
    try:
        with pytest.raises(StorageError):
            with table.hold("B1", timeout=0.1):
                pass
    finally:
        release.set()
        thread.join(5)


def test_preset_cancel_aborts_before_acquiring():
    table = ItemLockTable()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(OperationCancelledError):
        with table.hold("B1", timeout=1.0, cancel=cancel):
            pytest.fail("scope must not be entered")
    assert not table.is_held("B1")


def test_compare_and_set_only_moves_from_expected_status():
    repo = BorrowRequestRepository()
    request = BorrowRequest(
        item_id="B1",
        user_id="u1",
        interval=DateInterval(start=date(2024, 1, 1), end=date(2024, 1, 2)),
    )
    repo.add(request)
    now = datetime.now(timezone.utc)

    assert repo.compare_and_set_status(request.id, BorrowStatus.PENDING, BorrowStatus.DENIED, now) is request
    assert repo.compare_and_set_status(request.id, BorrowStatus.PENDING, BorrowStatus.APPROVED, now) is None
    assert request.status == BorrowStatus.DENIED
    assert repo.compare_and_set_status("missing", BorrowStatus.PENDING, BorrowStatus.DENIED, now) is None


def test_list_approved_for_item():
    repo = BorrowRequestRepository()
    interval = DateInterval(start=date(2024, 1, 1), end=date(2024, 1, 2))
    approved = BorrowRequest(item_id="B1", user_id="u1", interval=interval, status=BorrowStatus.APPROVED)
    repo.add(approved)
    repo.add(BorrowRequest(item_id="B1", user_id="u2", interval=interval))
    repo.add(BorrowRequest(item_id="B2", user_id="u3", interval=interval, status=BorrowStatus.APPROVED))

    assert repo.list_approved_for_item("B1") == [approved]


def test_reset_keeps_held_locks_excluding():
    table = ItemLockTable()
    with table.hold("B1", timeout=1.0):
        with table.hold("B2", timeout=1.0):
            pass
        table.reset()

        assert table.is_held("B1")
        with pytest.raises(StorageError):
            with table.hold("B1", timeout=0.1):
                pass
    assert not table.is_held("B1")
