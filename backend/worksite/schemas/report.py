from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from worksite.schemas.attendance import AttendanceCounts


class ReportRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    phone: str
    clock_in: str
    clock_out: str
    status: str
    amount: str
    description: str

    def as_cells(self) -> list[str]:
        return [
            self.name,
            self.phone,
            self.clock_in,
            self.clock_out,
            self.status,
            self.amount,
            self.description,
        ]


class Report(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    generated_by: str
    generated_at: datetime
    counts: AttendanceCounts
    rows: tuple[ReportRow, ...]
    file_name: str
    storage_url: str | None = None


class StoredReport(BaseModel):
    file_name: str
    url: str
    generated_at: datetime


class ReportsByDate(BaseModel):
    date: date
    reports: list[StoredReport]
