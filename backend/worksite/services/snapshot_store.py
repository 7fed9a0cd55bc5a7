"""
Daily snapshot store.

Each date's ledger is kept as one row keyed ``attendance_<YYYY-MM-DD>`` whose
payload is the full list of entries. A save always overwrites the previous
payload for that key; there is no merging.
"""

from __future__ import annotations

import json
import logging
from datetime import date

from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worksite.core.config import settings
from worksite.db.models import AttendanceSnapshot
from worksite.schemas.attendance import AttendanceEntry
from worksite.services.ledger import AttendanceLedger

logger = logging.getLogger(__name__)


def snapshot_key(day: date) -> str:
    return f"attendance_{day.isoformat()}"


class SnapshotStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        delete_when_empty: bool | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._delete_when_empty = (
            settings.SNAPSHOT_DELETE_WHEN_EMPTY if delete_when_empty is None else delete_when_empty
        )

    async def load(self, day: date) -> AttendanceLedger:
        """Return the saved ledger for ``day``, or an empty one."""
        key = snapshot_key(day)
        try:
            async with self._session_factory() as session:
                row = await session.get(AttendanceSnapshot, key)
                payload = row.payload if row is not None else None
        except (SQLAlchemyError, ValueError) as exc:
            # ValueError: the JSON column itself holds text that does not decode
            logger.warning("Snapshot '%s' could not be read, starting empty: %s", key, exc)
            return AttendanceLedger(day)

        if payload is None:
            return AttendanceLedger(day)

        entries = self._parse_payload(key, day, payload)
        if entries is None:
            return AttendanceLedger(day)
        return AttendanceLedger(day, entries)

    def _parse_payload(self, key: str, day: date, payload: object) -> list[AttendanceEntry] | None:
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except ValueError:
                logger.warning("Snapshot '%s' is not valid JSON, ignoring it", key)
                return None

        if not isinstance(payload, list):
            logger.warning("Snapshot '%s' is not a list of entries, ignoring it", key)
            return None

        try:
            entries = [AttendanceEntry.model_validate(item) for item in payload]
        except ValidationError as exc:
            logger.warning("Snapshot '%s' has malformed entries, ignoring it: %s", key, exc)
            return None

        if any(e.date != day for e in entries):
            logger.warning("Snapshot '%s' holds entries of another date, ignoring it", key)
            return None
        return entries

    async def save(self, ledger: AttendanceLedger) -> bool:
        """
        Persist the whole ledger under its date key.

        Returns True once the snapshot is written. An empty ledger is not
        written, so the previous snapshot of that date stays in place unless
        ``delete_when_empty`` is set, in which case it is removed.
        """
        key = snapshot_key(ledger.date)

        if ledger.is_empty:
            if not self._delete_when_empty:
                logger.debug("Ledger %s is empty, snapshot left as is", key)
                return False
            return await self._delete(key)

        payload = [entry.model_dump(mode="json") for entry in ledger.entries]
        try:
            async with self._session_factory() as session:
                row = await session.get(AttendanceSnapshot, key)
                if row is None:
                    session.add(
                        AttendanceSnapshot(key=key, snapshot_date=ledger.date, payload=payload)
                    )
                else:
                    row.payload = payload
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to save snapshot '%s'", key)
            return False

        logger.debug("Snapshot '%s' saved (%d entries)", key, len(payload))
        return True

    async def _delete(self, key: str) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(delete(AttendanceSnapshot).where(AttendanceSnapshot.key == key))
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to delete snapshot '%s'", key)
            return False

        logger.info("Ledger %s emptied, snapshot deleted", key)
        return True
