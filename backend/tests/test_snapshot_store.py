"""
Daily snapshot store tests.

Tests:
  - test_round_trip                  : save then load (new book) reproduces the entries
  - test_save_overwrites             : second save replaces the first payload
  - test_missing_snapshot_is_empty   : unknown date -> empty ledger
  - test_malformed_payload_is_empty  : broken rows degrade to an empty ledger
  - test_undecodable_column_is_empty : column text that is not JSON at all, same result
  - test_empty_ledger_keeps_snapshot : emptied ledger leaves the last snapshot
  - test_empty_ledger_deletes_when_configured
"""

from __future__ import annotations

from datetime import date, datetime

import pytest
from sqlalchemy import select, text

from worksite.db.models import AttendanceSnapshot
from worksite.services.ledger import AttendanceLedger, LedgerBook
from worksite.services.snapshot_store import SnapshotStore, snapshot_key

DAY = date(2026, 1, 13)
NINE = datetime(2026, 1, 13, 9, 0)


async def _write_raw(session_factory, payload) -> None:
    async with session_factory() as session:
        session.add(AttendanceSnapshot(key=snapshot_key(DAY), snapshot_date=DAY, payload=payload))
        await session.commit()


class TestRoundTrip:
    async def test_round_trip(self, store: SnapshotStore) -> None:
        ledger = AttendanceLedger(DAY)
        ledger.set_status("w1", "present", now=NINE)
        ledger.set_clock_time("w1", "clock_out", "17:30")
        ledger.set_payment("w2", "200", "advance")
        ledger.attach_report("http://files/reports/attendance_2026-01-13_1.pdf")

        assert await store.save(ledger) is True

        # A new book simulates a reload of the session
        reloaded = await LedgerBook(store).open(DAY)
        assert reloaded.entries == ledger.entries

    async def test_key_format(self, store: SnapshotStore, session_factory) -> None:
        ledger = AttendanceLedger(DAY)
        ledger.set_status("w1", "absent")
        await store.save(ledger)

        async with session_factory() as session:
            keys = (await session.execute(select(AttendanceSnapshot.key))).scalars().all()
        assert keys == ["attendance_2026-01-13"]

    async def test_save_overwrites(self, store: SnapshotStore) -> None:
        ledger = AttendanceLedger(DAY)
        ledger.set_status("w1", "absent")
        await store.save(ledger)

        ledger.set_status("w2", "present", now=NINE)
        ledger.remove_worker("w1")
        await store.save(ledger)

        reloaded = await store.load(DAY)
        assert [e.worker_id for e in reloaded.entries] == ["w2"]


class TestDegradedReads:
    async def test_missing_snapshot_is_empty(self, store: SnapshotStore) -> None:
        ledger = await store.load(date(2030, 5, 1))
        assert ledger.is_empty
        assert ledger.date == date(2030, 5, 1)

    @pytest.mark.parametrize(
        "payload",
        [
            {"not": "a list"},
            [{"worker_id": "w1"}],
            [{"id": "t", "worker_id": "w1", "date": "2026-01-13", "status": "late"}],
            [{"id": "t", "worker_id": "w1", "date": "2026-02-01", "status": "present"}],
            "{broken json",
        ],
    )
    async def test_malformed_payload_is_empty(self, store: SnapshotStore, session_factory, payload) -> None:
        await _write_raw(session_factory, payload)
        ledger = await store.load(DAY)
        assert ledger.is_empty

    @pytest.mark.parametrize("raw", ["{broken", "[{", "not json at all"])
    async def test_undecodable_column_is_empty(self, store: SnapshotStore, session_factory, raw: str) -> None:
        ledger = AttendanceLedger(DAY)
        ledger.set_status("w1", "present", now=NINE)
        await store.save(ledger)

        async with session_factory() as session:
            await session.execute(
                text("UPDATE attendance_snapshots SET payload = :raw WHERE key = :key"),
                {"raw": raw, "key": snapshot_key(DAY)},
            )
            await session.commit()

        reloaded = await store.load(DAY)
        assert reloaded.is_empty
        assert reloaded.date == DAY

    async def test_json_text_payload_is_accepted(self, store: SnapshotStore, session_factory) -> None:
        await _write_raw(
            session_factory,
            '[{"id": "temp_1", "worker_id": "w1", "date": "2026-01-13", "status": "present", "clock_in": "09:00"}]',
        )
        ledger = await store.load(DAY)
        assert ledger.get("w1").clock_in == "09:00"


class TestEmptyLedger:
    async def test_empty_ledger_keeps_snapshot(self, store: SnapshotStore) -> None:
        ledger = AttendanceLedger(DAY)
        ledger.set_status("w1", "present", now=NINE)
        await store.save(ledger)

        ledger.remove_worker("w1")
        assert await store.save(ledger) is False

        reloaded = await store.load(DAY)
        assert [e.worker_id for e in reloaded.entries] == ["w1"]

    async def test_empty_ledger_deletes_when_configured(self, session_factory) -> None:
        store = SnapshotStore(session_factory, delete_when_empty=True)
        ledger = AttendanceLedger(DAY)
        ledger.set_status("w1", "present", now=NINE)
        await store.save(ledger)

        ledger.remove_worker("w1")
        assert await store.save(ledger) is True
        assert (await store.load(DAY)).is_empty
