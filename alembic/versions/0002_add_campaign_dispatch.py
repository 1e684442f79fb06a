"""Add campaign_leases and campaign_checkpoints tables

Revision ID: 0002_add_campaign_dispatch
Revises: 0001_initial
Create Date: 2026-10-12

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0002_add_campaign_dispatch"
down_revision: str | None = "0001_initial"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "campaign_leases",
        sa.Column("campaign_key", sa.String(length=128), nullable=False),
        sa.Column("held_by", sa.String(length=128), nullable=False),
        sa.Column("acquired_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("ttl_ms", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("campaign_key"),
    )

    op.create_table(
        "campaign_checkpoints",
        sa.Column("campaign_key", sa.String(length=128), nullable=False),
        sa.Column("week_start_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            sa.String(length=32),
            server_default=sa.text("'NOT_STARTED'"),
            nullable=False,
        ),
        sa.Column("last_processed_index", sa.Integer(), server_default=sa.text("-1"), nullable=False),
        sa.Column("last_cursor", sa.BigInteger(), nullable=True),
        sa.Column("succeeded_ids", sa.JSON(), nullable=False),
        sa.Column("failed_ids", sa.JSON(), nullable=False),
        sa.Column("last_execution_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("campaign_key"),
    )
    op.create_index(
        "ix_campaign_checkpoints_status",
        "campaign_checkpoints",
        ["status"],
    )


def downgrade() -> None:
    op.drop_index("ix_campaign_checkpoints_status", table_name="campaign_checkpoints")
    op.drop_table("campaign_checkpoints")
    op.drop_table("campaign_leases")
