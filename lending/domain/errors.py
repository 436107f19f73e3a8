"""Error kinds raised by the lending core.

Each error carries the HTTP status the API layer reports it with.
"""

from __future__ import annotations


class LendingError(Exception):
    """Base class for every failure the lending core reports to callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LendingError):
    """Malformed interval or missing required field."""

    status_code = 400


class ConflictError(LendingError):
    """The interval overlaps an approved booking of the same item."""

    status_code = 400

    def __init__(self, message: str, conflicting_request_id: str | None = None) -> None:
        super().__init__(message)
        self.conflicting_request_id = conflicting_request_id


class NotFoundError(LendingError):
    status_code = 404


class InvalidStateError(LendingError):
    """Transition attempted from a terminal state."""

    status_code = 409


class StorageError(LendingError):
    """The store failed, or the item scope could not be entered in time."""

    status_code = 503


class OperationCancelledError(LendingError):
    """The caller cancelled before the item scope was entered."""

    status_code = 409
