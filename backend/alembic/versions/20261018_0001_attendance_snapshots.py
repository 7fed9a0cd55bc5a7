"""attendance_snapshots: one saved ledger per date

Revision ID: 0001_snapshots
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001_snapshots"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "attendance_snapshots",
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index(
        "ix_attendance_snapshots_snapshot_date",
        "attendance_snapshots",
        ["snapshot_date"],
    )


def downgrade() -> None:
    op.drop_index("ix_attendance_snapshots_snapshot_date", table_name="attendance_snapshots")
    op.drop_table("attendance_snapshots")
