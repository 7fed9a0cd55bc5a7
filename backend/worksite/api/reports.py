import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Response, status

from worksite.api.deps import get_report_generator
from worksite.core.middleware import get_current_user
from worksite.schemas.report import ReportsByDate
from worksite.schemas.worker import UserIdentity
from worksite.services.directory import DirectoryError
from worksite.services.report_generator import (
    PDF_CONTENT_TYPE,
    NotAuthenticatedError,
    ReportGenerationError,
    ReportGenerator,
    ReportInProgressError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/{day}",
    summary="Generate, upload and download the attendance PDF of a date",
    response_class=Response,
    responses={200: {"content": {PDF_CONTENT_TYPE: {}}}},
)
async def generate_report(
    day: date,
    generator: ReportGenerator = Depends(get_report_generator),
    current_user: UserIdentity = Depends(get_current_user),
) -> Response:
    try:
        generated = await generator.generate(day, current_user)
    except NotAuthenticatedError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except ReportInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ReportGenerationError as exc:
        logger.warning("Report for %s failed: %s", day, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Unexpected failure while generating report for %s", day)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate PDF",
        ) from exc

    report = generated.report
    return Response(
        content=generated.content,
        media_type=PDF_CONTENT_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{report.file_name}"',
            "X-Report-Url": report.storage_url or "",
        },
    )


@router.get(
    "/",
    response_model=list[ReportsByDate],
    summary="Generated reports grouped by date",
)
async def list_reports(
    generator: ReportGenerator = Depends(get_report_generator),
    _current_user: UserIdentity = Depends(get_current_user),
) -> list[ReportsByDate]:
    try:
        return await generator.list_reports()
    except DirectoryError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
