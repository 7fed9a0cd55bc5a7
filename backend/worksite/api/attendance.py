import logging
from datetime import date

from fastapi import APIRouter, Depends

from worksite.api.deps import get_book
from worksite.core.middleware import get_current_user
from worksite.schemas.attendance import (
    ClockTimeUpdate,
    LedgerResponse,
    PaymentUpdate,
    StatusUpdate,
)
from worksite.schemas.worker import UserIdentity
from worksite.services.ledger import AttendanceLedger, LedgerBook

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(ledger: AttendanceLedger) -> LedgerResponse:
    return LedgerResponse(
        date=ledger.date,
        counts=ledger.summary(),
        entries=ledger.entries,
    )


async def _persist(book: LedgerBook, ledger: AttendanceLedger) -> LedgerResponse:
    if not await book.save(ledger):
        logger.debug("Ledger %s not persisted", ledger.date)
    return _to_response(ledger)


@router.get(
    "/{day}",
    response_model=LedgerResponse,
    summary="Attendance ledger of a date (empty when nothing was recorded)",
)
async def get_ledger(
    day: date,
    book: LedgerBook = Depends(get_book),
    _current_user: UserIdentity = Depends(get_current_user),
) -> LedgerResponse:
    return _to_response(await book.open(day))


@router.put(
    "/{day}/{worker_id}/status",
    response_model=LedgerResponse,
    summary="Mark a worker present or absent",
)
async def set_status(
    day: date,
    worker_id: str,
    body: StatusUpdate,
    book: LedgerBook = Depends(get_book),
    _current_user: UserIdentity = Depends(get_current_user),
) -> LedgerResponse:
    ledger = await book.open(day)
    ledger.set_status(worker_id, body.status)
    return await _persist(book, ledger)


@router.put(
    "/{day}/{worker_id}/clock",
    response_model=LedgerResponse,
    summary="Set or clear a worker's clock-in / clock-out time",
)
async def set_clock_time(
    day: date,
    worker_id: str,
    body: ClockTimeUpdate,
    book: LedgerBook = Depends(get_book),
    _current_user: UserIdentity = Depends(get_current_user),
) -> LedgerResponse:
    ledger = await book.open(day)
    ledger.set_clock_time(worker_id, body.field, body.value)
    return await _persist(book, ledger)


@router.put(
    "/{day}/{worker_id}/payment",
    response_model=LedgerResponse,
    summary="Record a payment for a worker",
)
async def set_payment(
    day: date,
    worker_id: str,
    body: PaymentUpdate,
    book: LedgerBook = Depends(get_book),
    _current_user: UserIdentity = Depends(get_current_user),
) -> LedgerResponse:
    ledger = await book.open(day)
    ledger.set_payment(worker_id, body.amount, body.description)
    return await _persist(book, ledger)
