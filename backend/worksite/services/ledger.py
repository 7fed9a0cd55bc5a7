"""
Per-date attendance ledger.

A ledger holds at most one AttendanceEntry per worker for a single calendar
date. Entries only reference workers by id; names and phone numbers are
resolved from the directory whenever they are displayed.

Every mutation replaces the affected entry with an updated copy, so an entry
object handed out earlier is never modified behind the caller's back.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Iterable

from worksite.schemas.attendance import (
    AttendanceCounts,
    AttendanceEntry,
    AttendanceStatus,
    ClockField,
    PaymentRecord,
)

if TYPE_CHECKING:
    from worksite.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

CLOCK_FIELDS: frozenset[str] = frozenset({"clock_in", "clock_out"})
# Larger inputs are typos or junk exponents ("1e5000"), not wages
MAX_AMOUNT = Decimal("1e12")

_leading_number_re = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def _temp_id() -> str:
    return f"temp_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def _time_of_day(now: datetime | None) -> str:
    return (now or datetime.now()).strftime("%H:%M")


def parse_amount(raw: object) -> Decimal:
    """
    Turn free-form amount input into a non-negative Decimal.

    The leading numeric part is used ("150.5 rs" -> 150.5); anything without
    one, negative, non-finite or above MAX_AMOUNT becomes 0.
    """
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = Decimal(str(raw))
    else:
        match = _leading_number_re.match(str(raw or ""))
        if match is None:
            return Decimal(0)
        try:
            value = Decimal(match.group(0).strip())
        except InvalidOperation:
            return Decimal(0)

    if not value.is_finite() or value < 0 or value > MAX_AMOUNT:
        return Decimal(0)
    return value


class AttendanceLedger:
    def __init__(self, day: date, entries: Iterable[AttendanceEntry] = ()) -> None:
        self.date = day
        self._entries: dict[str, AttendanceEntry] = {}
        for entry in entries:
            if entry.date != day:
                continue
            self._entries[entry.worker_id] = entry

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, worker_id: object) -> bool:
        return worker_id in self._entries

    @property
    def is_empty(self) -> bool:
        return not self._entries

    @property
    def entries(self) -> list[AttendanceEntry]:
        return list(self._entries.values())

    def get(self, worker_id: str) -> AttendanceEntry | None:
        return self._entries.get(worker_id)

    def _new_entry(self, worker_id: str, status: AttendanceStatus, **fields) -> AttendanceEntry:
        entry = AttendanceEntry(
            id=_temp_id(),
            worker_id=worker_id,
            date=self.date,
            status=status,
            **fields,
        )
        self._entries[worker_id] = entry
        return entry

    def _replace(self, entry: AttendanceEntry, **changes) -> AttendanceEntry:
        updated = entry.model_copy(update=changes)
        self._entries[entry.worker_id] = updated
        return updated

    def set_status(
        self,
        worker_id: str,
        status: AttendanceStatus,
        now: datetime | None = None,
    ) -> AttendanceEntry:
        """Mark a worker present or absent; going present stamps clock_in."""
        existing = self._entries.get(worker_id)
        if existing is None:
            clock_in = _time_of_day(now) if status == "present" else None
            return self._new_entry(worker_id, status, clock_in=clock_in)

        changes: dict[str, object] = {"status": status}
        if status == "present":
            changes["clock_in"] = _time_of_day(now)
        return self._replace(existing, **changes)

    def set_clock_time(
        self,
        worker_id: str,
        field: ClockField,
        value: str | None,
    ) -> AttendanceEntry | None:
        """
        Set or clear clock_in / clock_out.

        A non-empty time marks the worker present, creating the entry when
        needed. Clearing a time keeps the status; clearing on a worker
        without an entry does nothing and returns None.
        """
        if field not in CLOCK_FIELDS:
            raise ValueError(f"Unknown clock field '{field}'")

        value = value.strip() if value else None
        existing = self._entries.get(worker_id)

        if existing is None:
            if not value:
                return None
            return self._new_entry(worker_id, "present", **{field: value})

        changes: dict[str, object] = {field: value or None}
        if value:
            changes["status"] = "present"
        return self._replace(existing, **changes)

    def set_payment(self, worker_id: str, amount: object, description: str | None) -> AttendanceEntry:
        payment = PaymentRecord(amount=parse_amount(amount), description=description or "")
        existing = self._entries.get(worker_id)
        if existing is None:
            # A payment on its own does not mean the worker showed up
            return self._new_entry(worker_id, "absent", payment=payment)
        return self._replace(existing, payment=payment)

    def remove_worker(self, worker_id: str) -> bool:
        return self._entries.pop(worker_id, None) is not None

    def attach_report(self, url: str) -> int:
        """Point every entry of this date at a freshly generated report."""
        attached = 0
        for entry in self.entries:
            if entry.date == self.date:
                self._replace(entry, report_ref=url)
                attached += 1
        return attached

    def summary(self) -> AttendanceCounts:
        statuses = [e.status for e in self._entries.values()]
        return AttendanceCounts(
            present=statuses.count("present"),
            absent=statuses.count("absent"),
        )


class LedgerBook:
    """Ledgers held in memory for the running service, keyed by date."""

    def __init__(self, store: SnapshotStore) -> None:
        self._store = store
        self._ledgers: dict[date, AttendanceLedger] = {}

    @property
    def dates(self) -> list[date]:
        return sorted(self._ledgers)

    async def open(self, day: date) -> AttendanceLedger:
        ledger = self._ledgers.get(day)
        if ledger is None:
            ledger = await self._store.load(day)
            self._ledgers[day] = ledger
        return ledger

    async def save(self, ledger: AttendanceLedger) -> bool:
        return await self._store.save(ledger)

    async def remove_worker(self, worker_id: str) -> list[date]:
        """Drop a worker's entries from every held ledger and persist them."""
        touched: list[date] = []
        for day, ledger in list(self._ledgers.items()):
            if ledger.remove_worker(worker_id):
                touched.append(day)
                await self._store.save(ledger)

        logger.info(
            "Removed worker %s from %d held ledger(s): %s",
            worker_id, len(touched), ", ".join(d.isoformat() for d in touched) or "-",
        )
        return touched
