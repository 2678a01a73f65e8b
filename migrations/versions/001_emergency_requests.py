"""Create emergency_requests table.

Revision ID: 001_emergency_requests
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_emergency_requests"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "emergency_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "sender_uid",
            sa.Text(),
            nullable=False,
            server_default="unknown",
        ),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("condition", sa.Text(), nullable=False, server_default=""),
        sa.Column("need", sa.Text(), nullable=False),
        sa.Column(
            "location",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("maps_url", sa.Text(), nullable=False, server_default=""),
        sa.Column("priorities", postgresql.JSONB(), nullable=False),
        sa.Column(
            "current_priority_index",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "status",
            sa.String(32),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("last_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "current_priority_index >= 0",
            name="ck_emergency_requests_index_non_negative",
        ),
    )

    # The escalation sweep scans by status
    op.create_index(
        "ix_emergency_requests_status",
        "emergency_requests",
        ["status"],
    )


def downgrade() -> None:
    op.drop_index("ix_emergency_requests_status", table_name="emergency_requests")
    op.drop_table("emergency_requests")
