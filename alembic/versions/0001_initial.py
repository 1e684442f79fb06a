"""Initial schema: recipients and pre-generated meal plans

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-05

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "recipients",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=512), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=True),
        sa.Column(
            "weekly_meal_plans_enabled",
            sa.Boolean(),
            server_default=sa.text("true"),
            nullable=False,
        ),
        sa.Column("meal_settings", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "meal_plans",
        sa.Column("seq", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("recipient_id", sa.Uuid(), nullable=False),
        sa.Column("week_start_date", sa.Date(), nullable=False),
        sa.Column("meals", sa.JSON(), nullable=False),
        sa.Column("ai_generated", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["recipient_id"], ["recipients.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("seq"),
        sa.UniqueConstraint("recipient_id", "week_start_date", name="uq_meal_plans_recipient_week"),
    )
    op.create_index("ix_meal_plans_week_start_date", "meal_plans", ["week_start_date"])


def downgrade() -> None:
    op.drop_index("ix_meal_plans_week_start_date", table_name="meal_plans")
    op.drop_table("meal_plans")
    op.drop_table("recipients")
