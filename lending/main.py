"""FastAPI application: entry point for the book lending service."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from lending.config import settings
from lending.domain.bus import EventBus
from lending.domain.errors import LendingError
from lending.domain.handlers import HandlerRegistry
from lending.domain.models import (
    AuditEntry,
    Book,
    BorrowHistory,
    BorrowHistoryOut,
    BorrowRequest,
    BorrowRequestOut,
    DecisionResponse,
    SubmitBorrowRequest,
    TickResponse,
)
from lending.logging_config import configure_logging
from lending.repos.memory import (
    AuditTrailRepository,
    BorrowHistoryRepository,
    BorrowRequestRepository,
    create_book_repository,
)
from lending.security import require_token
from lending.services.export import history_to_csv
from lending.services.lifecycle import LendingService

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

# ── Singletons ────────────────────────────────────────────────────────
event_bus = EventBus()
request_repo = BorrowRequestRepository()
history_repo = BorrowHistoryRepository()
audit_repo = AuditTrailRepository()
book_repo = create_book_repository(seed=settings.seed_catalog)

handler_registry = HandlerRegistry(
    bus=event_bus,
    request_repo=request_repo,
    audit_repo=audit_repo,
)
lending_service = LendingService(
    request_repo=request_repo,
    history_repo=history_repo,
    bus=event_bus,
    lock_timeout=settings.lock_timeout_seconds,
)


# ── Error mapping ─────────────────────────────────────────────────────


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are client errors like missing fields: 400."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request", "errors": _validation_errors(exc)},
    )


def _validation_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


def _to_out(req: BorrowRequest) -> BorrowRequestOut:
    book = book_repo.get(req.item_id)
    return BorrowRequestOut(
        id=req.id,
        item_id=req.item_id,
        user_id=req.user_id,
        book_title=book.title if book else None,
        book_author=book.author if book else None,
        start_date=req.interval.start,
        end_date=req.interval.end,
        status=req.status,
    )


def _history_out(record: BorrowHistory) -> BorrowHistoryOut:
    book = book_repo.get(record.item_id)
    return BorrowHistoryOut(
        id=record.id,
        request_id=record.request_id,
        item_id=record.item_id,
        book_title=book.title if book else None,
        start_date=record.interval.start,
        end_date=record.interval.end,
    )


# ── Routes ────────────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict:
    return {"status": "healthy", "app": settings.app_name}


@app.get("/books", response_model=list[Book])
def list_books() -> list[Book]:
    """Return the book catalog."""
    return book_repo.list_all()


@app.post(
    "/borrow-requests",
    response_model=BorrowRequest,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_token)],
)
def submit_borrow_request(payload: SubmitBorrowRequest) -> BorrowRequest:
    """Create a pending borrow request."""
    return lending_service.submit(
        user_id=payload.user_id,
        item_id=payload.item_id,
        start=payload.start_date,
        end=payload.end_date,
    )


@app.get(
    "/borrow-requests",
    response_model=list[BorrowRequestOut],
    dependencies=[Depends(require_token)],
)
def list_borrow_requests(
    item_id: str | None = None, user_id: str | None = None
) -> list[BorrowRequestOut]:
    """Return borrow requests joined with their book, optionally filtered."""
    if item_id is not None:
        requests = lending_service.list_for_item(item_id)
    else:
        requests = lending_service.list_all()
    if user_id is not None:
        requests = [r for r in requests if r.user_id == user_id]
    return [_to_out(r) for r in requests]


@app.get(
    "/items/{item_id}/borrow-requests",
    response_model=list[BorrowRequestOut],
    dependencies=[Depends(require_token)],
)
def list_item_borrow_requests(item_id: str) -> list[BorrowRequestOut]:
    return [_to_out(r) for r in lending_service.list_for_item(item_id)]


@app.get(
    "/borrow-requests/{request_id}",
    response_model=BorrowRequestOut,
    dependencies=[Depends(require_token)],
)
def get_borrow_request(request_id: str) -> BorrowRequestOut:
    return _to_out(lending_service.get(request_id))


@app.get(
    "/borrow-requests/{request_id}/timeline",
    response_model=list[AuditEntry],
    dependencies=[Depends(require_token)],
)
def get_borrow_request_timeline(request_id: str) -> list[AuditEntry]:
    """Return the audit trail of a request, oldest first."""
    lending_service.get(request_id)
    return audit_repo.list_for_request(request_id)


@app.put(
    "/borrow-requests/{request_id}/approve",
    response_model=DecisionResponse,
    dependencies=[Depends(require_token)],
)
def approve_borrow_request(request_id: str) -> DecisionResponse:
    approved = lending_service.approve(request_id)
    return DecisionResponse(message="Borrow request approved", request=approved)


@app.put(
    "/borrow-requests/{request_id}/deny",
    response_model=DecisionResponse,
    dependencies=[Depends(require_token)],
)
def deny_borrow_request(request_id: str) -> DecisionResponse:
    denied = lending_service.deny(request_id)
    return DecisionResponse(message="Borrow request denied", request=denied)


@app.post(
    "/borrow-requests/{request_id}/archive",
    response_model=BorrowHistory,
    dependencies=[Depends(require_token)],
)
def archive_borrow_request(request_id: str) -> BorrowHistory:
    """Copy an approved request into the borrow history (idempotent)."""
    return lending_service.archive(request_id)


@app.post("/tick", response_model=TickResponse, dependencies=[Depends(require_token)])
def tick(today: date | None = None) -> TickResponse:
    """Archive approved borrows that ended before *today*.

    Pass *today* as a query param to control the simulated clock.
    Defaults to ``date.today()`` when omitted.
    """
    current_day = today or date.today()
    archived = lending_service.archive_elapsed(current_day)
    return TickResponse(today=current_day, archived=[h.request_id for h in archived])


@app.get(
    "/users/{user_id}/history",
    response_model=list[BorrowHistoryOut],
    dependencies=[Depends(require_token)],
)
def user_history(user_id: str) -> list[BorrowHistoryOut]:
    return [_history_out(h) for h in lending_service.history_for_user(user_id)]


@app.get("/users/{user_id}/borrow-history/csv", dependencies=[Depends(require_token)])
def export_user_history(user_id: str) -> Response:
    """Download a user's borrow history as CSV."""
    content = history_to_csv(lending_service.history_for_user(user_id), book_repo)
    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=borrow-history-{user_id}.csv"
        },
    )
