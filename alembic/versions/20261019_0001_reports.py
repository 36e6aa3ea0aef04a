"""
Reports table.

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "Reports",
        sa.Column("ReportID", sa.Uuid(), primary_key=True),
        sa.Column("UserID", sa.Uuid(), nullable=False),
        sa.Column("ReportType", sa.String(length=32), nullable=False),
        sa.Column("OutputFilePath", sa.String(length=500), nullable=True),
        sa.Column("DownloadUrl", sa.Text(), nullable=True),
        sa.Column("DownloadUrlExpiresAt", sa.DateTime(), nullable=True),
        sa.Column("ErrorMessage", sa.Text(), nullable=True),
        sa.Column(
            "CreatedAt",
            sa.DateTime(),
            nullable=False,
            # Naive UTC, matching the ORM default
            server_default=sa.text("timezone('utc', now())"),
        ),
        sa.Column("StartedAt", sa.DateTime(), nullable=True),
        sa.Column("CompletedAt", sa.DateTime(), nullable=True),
        sa.Column("FailedAt", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_Reports_UserID", "Reports", ["UserID"])


def downgrade() -> None:
    op.drop_index("ix_Reports_UserID", table_name="Reports")
    op.drop_table("Reports")
