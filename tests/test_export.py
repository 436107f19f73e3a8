"""Tests for the CSV history export."""

from __future__ import annotations

import csv
import io
from datetime import date

from lending.domain.models import Book, BorrowHistory, DateInterval
from lending.repos.memory import BookRepository, create_book_repository
from lending.services.export import CSV_HEADER, history_to_csv


def _history(item_id: str, start: date, end: date) -> BorrowHistory:
    return BorrowHistory(
        request_id=f"req-{item_id}",
        user_id="u1",
        item_id=item_id,
        interval=DateInterval(start=start, end=end),
    )


def test_csv_has_header_and_joined_titles():
    books = BookRepository()
    books.add(Book(id="B1", title="Dune", author="Frank Herbert"))

    content = history_to_csv([_history("B1", date(2024, 1, 1), date(2024, 1, 5))], books)
    rows = list(csv.reader(io.StringIO(content)))

    assert rows[0] == CSV_HEADER
    assert rows[1] == ["Dune", "2024-01-01", "2024-01-05"]


def test_unknown_book_falls_back_to_item_id():
    content = history_to_csv([_history("X9", date(2024, 2, 1), date(2024, 2, 1))], BookRepository())
    rows = list(csv.reader(io.StringIO(content)))
    assert rows[1] == ["X9", "2024-02-01", "2024-02-01"]


def test_empty_history_is_header_only():
    rows = list(csv.reader(io.StringIO(history_to_csv([], BookRepository()))))
    assert rows == [CSV_HEADER]


def test_seeded_catalog():
    assert {b.id for b in create_book_repository().list_all()} == {"B1", "B2", "B3"}
    assert create_book_repository(seed=False).list_all() == []
