from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    func,
    text as sql_text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mealdispatch.db.base import Base

CAMPAIGN_STATUS_NOT_STARTED = "NOT_STARTED"
CAMPAIGN_STATUS_IN_PROGRESS = "IN_PROGRESS"
CAMPAIGN_STATUS_COMPLETED = "COMPLETED"

VALID_CAMPAIGN_STATUSES: frozenset[str] = frozenset({
    CAMPAIGN_STATUS_NOT_STARTED,
    CAMPAIGN_STATUS_IN_PROGRESS,
    CAMPAIGN_STATUS_COMPLETED,
})


class CampaignLease(Base):
    """Time-boxed mutual-exclusion token for one campaign key.

    Created on acquisition, deleted on graceful release, overwritten on
    stale takeover.  Never updated in place otherwise.
    """

    __tablename__ = "campaign_leases"

    campaign_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    held_by: Mapped[str] = mapped_column(String(128), nullable=False)
    acquired_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ttl_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)


class CampaignCheckpoint(Base):
    """Durable progress record for one weekly campaign.

    ``last_processed_index`` only moves forward.  Once ``status`` is
    ``COMPLETED`` the row is never written again and serves as the
    audit record of the run.
    """

    __tablename__ = "campaign_checkpoints"

    campaign_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    week_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=CAMPAIGN_STATUS_NOT_STARTED,
        server_default=sql_text("'NOT_STARTED'"),
        index=True,
    )
    last_processed_index: Mapped[int] = mapped_column(
        Integer, nullable=False, default=-1, server_default=sql_text("-1")
    )
    last_cursor: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    succeeded_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    failed_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    last_execution_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Recipient(Base):
    """A registered user who may receive the weekly meal plan email."""

    __tablename__ = "recipients"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(512), nullable=False)
    name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    weekly_meal_plans_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sql_text("true")
    )
    meal_settings: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    meal_plans: Mapped[list[MealPlan]] = relationship(back_populates="recipient")


class MealPlan(Base):
    """A pre-generated plan for one recipient and one week.

    ``seq`` is assigned at insert time and never changes, which gives the
    dispatcher a stable iteration order per week.
    """

    __tablename__ = "meal_plans"
    __table_args__ = (UniqueConstraint("recipient_id", "week_start_date", name="uq_meal_plans_recipient_week"),)

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipient_id: Mapped[UUID] = mapped_column(ForeignKey("recipients.id", ondelete="CASCADE"), nullable=False)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    meals: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    ai_generated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sql_text("false")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    recipient: Mapped[Recipient] = relationship(back_populates="meal_plans")
