"""CSV rendering of a user's borrow history."""

from __future__ import annotations

import csv
import io

from lending.domain.models import BorrowHistory
from lending.repos.memory import BookRepository

CSV_HEADER = ["Book Title", "Start Date", "End Date"]


def history_to_csv(history: list[BorrowHistory], books: BookRepository) -> str:
    """Render history rows with the book title joined from the catalog.

    Unknown books fall back to their item id.
    """
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADER)
    for record in history:
        book = books.get(record.item_id)
        writer.writerow(
            [
                book.title if book else record.item_id,
                record.interval.start.isoformat(),
                record.interval.end.isoformat(),
            ]
        )
    return output.getvalue()
