from datetime import date, datetime

from sqlalchemy import JSON, Date, DateTime, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class AttendanceSnapshot(Base):
    """Last saved ledger of one date, stored under ``attendance_<date>``."""

    __tablename__ = "attendance_snapshots"

    __table_args__ = (
        Index("ix_attendance_snapshots_snapshot_date", "snapshot_date"),
    )

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    payload: Mapped[list | None] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AttendanceSnapshot key={self.key} snapshot_date={self.snapshot_date}>"
