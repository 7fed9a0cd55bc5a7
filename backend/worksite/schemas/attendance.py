from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator

AttendanceStatus = Literal["present", "absent"]
ClockField = Literal["clock_in", "clock_out"]


class PaymentRecord(BaseModel):
    amount: Decimal = Field(default=Decimal(0), ge=0)
    description: str = ""


class AttendanceEntry(BaseModel):
    id: str
    worker_id: str
    date: date
    status: AttendanceStatus
    clock_in: str | None = None
    clock_out: str | None = None
    payment: PaymentRecord | None = None
    report_ref: str | None = None


class AttendanceCounts(BaseModel):
    present: int
    absent: int


class LedgerResponse(BaseModel):
    date: date
    counts: AttendanceCounts
    entries: list[AttendanceEntry]


class StatusUpdate(BaseModel):
    status: AttendanceStatus


class ClockTimeUpdate(BaseModel):
    field: ClockField
    value: str | None = None

    @field_validator("value")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class PaymentUpdate(BaseModel):
    # Raw input as typed; the ledger turns anything unparsable into 0
    amount: str | Decimal = ""
    description: str = ""
