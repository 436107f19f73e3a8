"""In-memory repositories for borrow requests, history, audit trail and books."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from lending.domain.errors import OperationCancelledError, StorageError
from lending.domain.models import (
    AuditEntry,
    Book,
    BorrowHistory,
    BorrowRequest,
    BorrowStatus,
)

logger = logging.getLogger(__name__)

# How often a cancellable acquisition re-checks its cancel flag.
_CANCEL_POLL_SECONDS = 0.05


class ItemLockTable:
    """One lock per item id, created on first use.

    Holding the lock for an item is the exclusive-access scope for that
    item; locks for different items never contend.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, item_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(item_id)
            if lock is None:
                lock = self._locks[item_id] = threading.Lock()
            return lock

    def is_held(self, item_id: str) -> bool:
        with self._guard:
            lock = self._locks.get(item_id)
        return lock is not None and lock.locked()

    def _acquire(
        self,
        lock: threading.Lock,
        item_id: str,
        timeout: float,
        cancel: threading.Event | None,
    ) -> None:
        if cancel is None:
            if not lock.acquire(timeout=timeout):
                raise StorageError(f"Timed out waiting for item {item_id}")
            return

        deadline = time.monotonic() + timeout
        while True:
            if cancel.is_set():
                raise OperationCancelledError(
                    f"Cancelled before entering the scope of item {item_id}"
                )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise StorageError(f"Timed out waiting for item {item_id}")
            if lock.acquire(timeout=min(_CANCEL_POLL_SECONDS, remaining)):
                return

    @contextmanager
    def hold(
        self,
        item_id: str,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> Iterator[None]:
        """Hold the item's lock for the duration of the ``with`` block.

        Raises StorageError when the lock is not acquired within *timeout*
        seconds, and OperationCancelledError when *cancel* is set first.
        """
        lock = self._lock_for(item_id)
        try:
            self._acquire(lock, item_id, timeout, cancel)
        except StorageError:
            logger.warning("Item scope for %s not acquired within %.2fs", item_id, timeout)
            raise
        try:
            yield
        finally:
            lock.release()

    def reset(self) -> None:
        """Forget idle locks; a held lock stays so its scope keeps excluding."""
        with self._guard:
            self._locks = {
                item_id: lock for item_id, lock in self._locks.items() if lock.locked()
            }


class BorrowRequestRepository:
    """Dict-backed store for BorrowRequest instances, keyed by id.

    ``_lock`` guards the dict itself; ``item_scope`` is the per-item
    read-modify-write scope used by approvals.
    """

    def __init__(self, item_locks: ItemLockTable | None = None) -> None:
        self._store: dict[str, BorrowRequest] = {}
        self._lock = threading.Lock()
        self.item_locks = item_locks or ItemLockTable()

    def add(self, request: BorrowRequest) -> None:
        with self._lock:
            self._store[request.id] = request

    def get(self, request_id: str) -> BorrowRequest | None:
        with self._lock:
            return self._store.get(request_id)

    def list_all(self) -> list[BorrowRequest]:
        with self._lock:
            return sorted(self._store.values(), key=lambda r: r.created_at)

    def list_for_item(self, item_id: str) -> list[BorrowRequest]:
        return [r for r in self.list_all() if r.item_id == item_id]

    def list_for_user(self, user_id: str) -> list[BorrowRequest]:
        return [r for r in self.list_all() if r.user_id == user_id]

    def list_approved_for_item(self, item_id: str) -> list[BorrowRequest]:
        return [
            r for r in self.list_for_item(item_id) if r.status == BorrowStatus.APPROVED
        ]

    def compare_and_set_status(
        self,
        request_id: str,
        expected: BorrowStatus,
        new: BorrowStatus,
        decided_at: datetime,
    ) -> BorrowRequest | None:
        """Move a request from *expected* to *new* in one step.

        Returns the updated request, or None when the request is missing or
        its status is no longer *expected*.
        """
        with self._lock:
            request = self._store.get(request_id)
            if request is None or request.status != expected:
                return None
            request.status = new
            request.decided_at = decided_at
            return request

    @contextmanager
    def item_scope(
        self,
        item_id: str,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> Iterator[None]:
        with self.item_locks.hold(item_id, timeout, cancel):
            yield

    def reset(self) -> None:
        with self._lock:
            self._store.clear()
        self.item_locks.reset()


class BorrowHistoryRepository:
    """Store for BorrowHistory records, unique on the source request id."""

    def __init__(self) -> None:
        self._by_request: dict[str, BorrowHistory] = {}
        self._lock = threading.Lock()

    def add_once(self, history: BorrowHistory) -> tuple[BorrowHistory, bool]:
        """Insert *history* unless its request was already archived.

        Returns the stored record and whether it was newly created.
        """
        with self._lock:
            existing = self._by_request.get(history.request_id)
            if existing is not None:
                return existing, False
            self._by_request[history.request_id] = history
            return history, True

    def get_for_request(self, request_id: str) -> BorrowHistory | None:
        with self._lock:
            return self._by_request.get(request_id)

    def list_all(self) -> list[BorrowHistory]:
        with self._lock:
            return sorted(self._by_request.values(), key=lambda h: h.interval.start)

    def list_for_user(self, user_id: str) -> list[BorrowHistory]:
        return [h for h in self.list_all() if h.user_id == user_id]

    def reset(self) -> None:
        with self._lock:
            self._by_request.clear()


class AuditTrailRepository:
    """List-backed store for AuditEntry instances."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def add(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def list_for_request(self, request_id: str) -> list[AuditEntry]:
        with self._lock:
            entries = [e for e in self._entries if e.request_id == request_id]
        return sorted(entries, key=lambda e: e.timestamp)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


class BookRepository:
    """Read-mostly catalog of books, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Book] = {}

    def add(self, book: Book) -> None:
        self._store[book.id] = book

    def get(self, book_id: str) -> Book | None:
        return self._store.get(book_id)

    def list_all(self) -> list[Book]:
        return list(self._store.values())


# ---------------------------------------------------------------------------
# Seed data – a small catalog to borrow from
# ---------------------------------------------------------------------------


def _seed_books(repo: BookRepository) -> None:
    repo.add(Book(id="B1", title="The Pragmatic Programmer", author="Hunt & Thomas"))
    repo.add(Book(id="B2", title="Structure and Interpretation of Computer Programs", author="Abelson & Sussman"))
    repo.add(Book(id="B3", title="Designing Data-Intensive Applications", author="Martin Kleppmann"))


def create_book_repository(seed: bool = True) -> BookRepository:
    """Return a BookRepository, pre-loaded with sample books unless *seed* is False."""
    repo = BookRepository()
    if seed:
        _seed_books(repo)
    return repo
