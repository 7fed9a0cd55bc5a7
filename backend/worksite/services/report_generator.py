"""
Attendance PDF reports.

A report covers one date: who generated it, present/absent totals and one
row per worker of the roster. The rendered PDF is uploaded to the directory
service's object storage as ``<prefix>/attendance_<date>_<unixMillis>.pdf``;
on success its public URL is written back onto every entry of that date.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from worksite.core.config import settings
from worksite.schemas.report import Report, ReportRow, ReportsByDate, StoredReport
from worksite.schemas.worker import UserIdentity, Worker
from worksite.services.directory import DirectoryClient, DirectoryError
from worksite.services.ledger import AttendanceLedger, LedgerBook

logger = logging.getLogger(__name__)

REPORT_TITLE = "Worker Attendance Report"
REPORT_HEADERS: tuple[str, ...] = (
    "Name", "Phone", "Clock In", "Clock Out", "Status", "Amount", "Description",
)
NOT_AVAILABLE = "N/A"
FALLBACK_GENERATOR = "System"
PDF_CONTENT_TYPE = "application/pdf"

_HEADER_FILL = colors.Color(41 / 255, 128 / 255, 185 / 255)
_FOOTER_GREY = colors.Color(150 / 255, 150 / 255, 150 / 255)
_CUSTOM_FONT = "ReportFont"
# Sums to the printable width of A4 with 14 mm side margins
_COLUMN_WIDTHS_MM = (30, 26, 18, 20, 18, 22, 48)

_file_name_re = re.compile(r"^attendance_(\d{4}-\d{2}-\d{2})_(\d+)\.pdf$")


class ReportGenerationError(Exception):
    """Report generation stopped; nothing was written back to the ledger."""


class NotAuthenticatedError(ReportGenerationError):
    pass


class ReportInProgressError(ReportGenerationError):
    pass


@dataclass(frozen=True)
class GeneratedReport:
    report: Report
    content: bytes


def report_file_name(day: date, unix_millis: int) -> str:
    return f"attendance_{day.isoformat()}_{unix_millis}.pdf"


def parse_report_file_name(name: str) -> tuple[date, datetime] | None:
    match = _file_name_re.match(name)
    if match is None:
        return None
    try:
        day = date.fromisoformat(match.group(1))
    except ValueError:
        return None
    generated_at = datetime.fromtimestamp(int(match.group(2)) / 1000, tz=timezone.utc)
    return day, generated_at


def format_amount(amount: Decimal, symbol: str | None = None) -> str:
    """Currency-prefixed amount without a redundant fraction: 200 -> ₹200."""
    symbol = settings.CURRENCY_SYMBOL if symbol is None else symbol
    if amount.adjusted() >= 15:
        # Past any wage range; keeps the exponent instead of spelling out every digit
        return f"{symbol}{amount}"
    return f"{symbol}{format(amount.normalize(), 'f')}"


def build_report(
    ledger: AttendanceLedger,
    roster: list[Worker],
    *,
    generated_by: str,
    generated_at: datetime,
    file_name: str,
) -> Report:
    """One row per roster worker, in roster order; unmarked workers are all N/A."""
    rows = []
    for worker in roster:
        entry = ledger.get(worker.id)
        payment = entry.payment if entry else None
        rows.append(
            ReportRow(
                name=worker.name,
                phone=worker.phone_number,
                clock_in=(entry.clock_in if entry else None) or NOT_AVAILABLE,
                clock_out=(entry.clock_out if entry else None) or NOT_AVAILABLE,
                status=entry.status.capitalize() if entry else NOT_AVAILABLE,
                amount=format_amount(payment.amount) if payment else NOT_AVAILABLE,
                description=(payment.description if payment else None) or NOT_AVAILABLE,
            )
        )

    return Report(
        date=ledger.date,
        generated_by=generated_by,
        generated_at=generated_at,
        counts=ledger.summary(),
        rows=tuple(rows),
        file_name=file_name,
    )


def _fonts() -> tuple[str, str]:
    if not settings.REPORT_FONT_PATH:
        return "Helvetica", "Helvetica-Bold"
    if _CUSTOM_FONT not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(TTFont(_CUSTOM_FONT, settings.REPORT_FONT_PATH))
    return _CUSTOM_FONT, _CUSTOM_FONT


def render_pdf(report: Report) -> bytes:
    regular, bold = _fonts()
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle", parent=styles["Title"], fontName=bold, fontSize=18, alignment=TA_CENTER,
    )
    heading_style = ParagraphStyle(
        "ReportHeading", parent=styles["Heading2"], fontName=bold, fontSize=14, spaceBefore=8,
    )
    body_style = ParagraphStyle(
        "ReportBody", parent=styles["BodyText"], fontName=regular, fontSize=12, leading=16,
    )
    cell_style = ParagraphStyle(
        "ReportCell", parent=styles["BodyText"], fontName=regular, fontSize=9, leading=11,
    )

    story = [
        Paragraph(REPORT_TITLE, title_style),
        Paragraph(f"Generated by: {escape(report.generated_by)}", body_style),
        Paragraph(f"Date: {report.date.strftime('%B %d, %Y')}", body_style),
        Paragraph(f"Project: {escape(settings.PROJECT_LABEL)}", body_style),
        Spacer(1, 4 * mm),
        Paragraph("Attendance Summary", heading_style),
        Paragraph(f"Total Present: {report.counts.present}", body_style),
        Paragraph(f"Total Absent: {report.counts.absent}", body_style),
        Spacer(1, 4 * mm),
        Paragraph("Attendance Details", heading_style),
    ]

    data = [list(REPORT_HEADERS)]
    data += [[Paragraph(escape(cell), cell_style) for cell in row.as_cells()] for row in report.rows]

    table = Table(
        data,
        colWidths=[w * mm for w in _COLUMN_WIDTHS_MM],
        repeatRows=1,
        hAlign="LEFT",
    )
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), _HEADER_FILL),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), bold),
        ("FONTSIZE", (0, 0), (-1, 0), 10),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    story.append(table)

    def _footer(canvas, doc) -> None:
        canvas.saveState()
        canvas.setFont(regular, 10)
        canvas.setFillColor(_FOOTER_GREY)
        canvas.drawCentredString(doc.pagesize[0] / 2, 10 * mm, settings.REPORT_FOOTER)
        canvas.restoreState()

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=14 * mm,
        rightMargin=14 * mm,
        topMargin=12 * mm,
        bottomMargin=20 * mm,
        title=f"{REPORT_TITLE} {report.date.isoformat()}",
        author=report.generated_by,
    )
    doc.build(story, onFirstPage=_footer, onLaterPages=_footer)
    return buffer.getvalue()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportGenerator:
    def __init__(
        self,
        directory: DirectoryClient,
        book: LedgerBook,
        *,
        clock: Callable[[], datetime] = _utcnow,
        bucket: str | None = None,
        prefix: str | None = None,
        local_dir: str | Path | None = None,
    ) -> None:
        self._directory = directory
        self._book = book
        self._clock = clock
        self.bucket = bucket or settings.REPORTS_BUCKET
        self.prefix = (prefix or settings.REPORTS_PREFIX).strip("/")
        local_dir = local_dir if local_dir is not None else settings.REPORTS_LOCAL_DIR
        self._local_dir = Path(local_dir) if local_dir else None
        self._locks: dict[date, asyncio.Lock] = {}
        self._last_millis = 0

    def is_generating(self, day: date) -> bool:
        lock = self._locks.get(day)
        return lock is not None and lock.locked()

    def _next_millis(self) -> int:
        millis = int(self._clock().timestamp() * 1000)
        # Keeps object keys unique even when two generations share a millisecond
        if millis <= self._last_millis:
            millis = self._last_millis + 1
        self._last_millis = millis
        return millis

    async def generate(self, day: date, user: UserIdentity | None) -> GeneratedReport:
        """
        Render, upload and link the report of ``day``.

        Only one generation per date runs at a time; a concurrent request
        for the same date is rejected with ReportInProgressError.
        """
        if user is None:
            raise NotAuthenticatedError("User not authenticated")

        lock = self._locks.setdefault(day, asyncio.Lock())
        if lock.locked():
            raise ReportInProgressError(f"A report for {day.isoformat()} is already being generated")

        try:
            async with lock:
                return await self._generate(day, user)
        finally:
            # Nobody ever waits on a date lock, so a released one can go
            if not lock.locked() and self._locks.get(day) is lock:
                del self._locks[day]

    async def _generate(self, day: date, user: UserIdentity) -> GeneratedReport:
        ledger = await self._book.open(day)

        profile = await self._directory.get_profile(user.id)
        if profile is not None and profile.name:
            generated_by = profile.name
        else:
            generated_by = FALLBACK_GENERATOR
            logger.warning("No profile name for user %s, report signed as '%s'", user.id, generated_by)

        try:
            roster = await self._directory.list_workers()
        except DirectoryError as exc:
            raise ReportGenerationError(f"Could not load workers: {exc.message}") from exc

        millis = self._next_millis()
        generated_at = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
        file_name = report_file_name(day, millis)
        report = build_report(
            ledger,
            roster,
            generated_by=generated_by,
            generated_at=generated_at,
            file_name=file_name,
        )
        content = render_pdf(report)

        key = f"{self.prefix}/{file_name}"
        try:
            await self._directory.upload_object(
                self.bucket, key, content, PDF_CONTENT_TYPE, overwrite=True
            )
        except DirectoryError as exc:
            raise ReportGenerationError(f"Could not upload report: {exc.message}") from exc

        url = self._directory.get_public_url(self.bucket, key)
        attached = ledger.attach_report(url)
        await self._book.save(ledger)

        self._save_local_copy(file_name, content)

        logger.info(
            "Report %s generated by '%s': present=%d, absent=%d, rows=%d, linked entries=%d",
            file_name, generated_by, report.counts.present, report.counts.absent,
            len(report.rows), attached,
        )
        return GeneratedReport(report=report.model_copy(update={"storage_url": url}), content=content)

    def _save_local_copy(self, file_name: str, content: bytes) -> None:
        if self._local_dir is None:
            return
        try:
            self._local_dir.mkdir(parents=True, exist_ok=True)
            (self._local_dir / file_name).write_bytes(content)
        except OSError as exc:
            logger.warning("Local copy of %s not written: %s", file_name, exc)

    async def list_reports(self) -> list[ReportsByDate]:
        """Stored reports grouped by date, newest date and generation first."""
        names = await self._directory.list_objects(self.bucket, self.prefix)

        grouped: dict[date, list[StoredReport]] = {}
        for name in names:
            parsed = parse_report_file_name(name)
            if parsed is None:
                logger.debug("Skipping unrelated object '%s/%s'", self.prefix, name)
                continue
            day, generated_at = parsed
            grouped.setdefault(day, []).append(
                StoredReport(
                    file_name=name,
                    url=self._directory.get_public_url(self.bucket, f"{self.prefix}/{name}"),
                    generated_at=generated_at,
                )
            )

        return [
            ReportsByDate(
                date=day,
                reports=sorted(grouped[day], key=lambda r: r.generated_at, reverse=True),
            )
            for day in sorted(grouped, reverse=True)
        ]
