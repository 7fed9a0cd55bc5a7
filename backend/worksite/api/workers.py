import logging

from fastapi import APIRouter, Depends, HTTPException, status

from worksite.api.deps import get_book, get_directory
from worksite.core.middleware import get_current_user
from worksite.schemas.worker import UserIdentity, Worker, WorkerCreate
from worksite.services.directory import DirectoryClient, DirectoryError
from worksite.services.ledger import LedgerBook

logger = logging.getLogger(__name__)

router = APIRouter()


def _bad_gateway(exc: DirectoryError, fallback: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=exc.message or fallback,
    )


@router.get(
    "/",
    response_model=list[Worker],
    summary="List the worker roster",
)
async def list_workers(
    directory: DirectoryClient = Depends(get_directory),
    _current_user: UserIdentity = Depends(get_current_user),
) -> list[Worker]:
    try:
        return await directory.list_workers()
    except DirectoryError as exc:
        raise _bad_gateway(exc, "Failed to load workers") from exc


@router.post(
    "/",
    response_model=Worker,
    status_code=status.HTTP_201_CREATED,
    summary="Add a worker (name and phone number are required)",
)
async def add_worker(
    body: WorkerCreate,
    directory: DirectoryClient = Depends(get_directory),
    _current_user: UserIdentity = Depends(get_current_user),
) -> Worker:
    try:
        return await directory.insert_worker(body.name, body.phone_number)
    except DirectoryError as exc:
        raise _bad_gateway(exc, "Failed to add worker") from exc


@router.delete(
    "/{worker_id}",
    summary="Delete a worker and drop their attendance from every open ledger",
)
async def delete_worker(
    worker_id: str,
    directory: DirectoryClient = Depends(get_directory),
    book: LedgerBook = Depends(get_book),
    _current_user: UserIdentity = Depends(get_current_user),
) -> dict:
    try:
        await directory.delete_worker(worker_id)
    except DirectoryError as exc:
        raise _bad_gateway(exc, "Failed to delete worker") from exc

    touched = await book.remove_worker(worker_id)
    return {
        "id": worker_id,
        "cleared_dates": [d.isoformat() for d in touched],
    }
