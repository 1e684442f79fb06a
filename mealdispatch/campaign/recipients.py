"""Recipient sources for weekly campaigns.

A source returns eligible recipients for a campaign key in a stable
total order.  The runner resumes either from a positional index
(``after_index``, the last processed position, -1 before the first
batch) or, preferably, from an opaque ``after_cursor`` -- the ``cursor``
of the last recipient it processed.  Cursor resumption is immune to
recipients opting out between invocations; positional resumption is
not.

Eligibility filtering (opt-out flag, unsendable addresses) is the
source's job.  The dispatcher never re-checks it.
"""
from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from mealdispatch.campaign.eligibility import is_sendable_email
from mealdispatch.core.weeks import week_from_campaign_key
from mealdispatch.db.models import MealPlan, Recipient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibleRecipient:
    """Read-only view of one recipient for one campaign."""

    id: str
    delivery_address: str
    name: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    cursor: int | None = None


class RecipientSource(Protocol):
    def next_batch(
        self,
        campaign_key: str,
        after_index: int,
        max_count: int,
        after_cursor: int | None = None,
    ) -> list[EligibleRecipient]:
        ...


# ---------------------------------------------------------------------------
# SQL-backed source
# ---------------------------------------------------------------------------

class SqlRecipientSource:
    """Recipients with a pre-generated meal plan for the campaign's week.

    Ordered by ``meal_plans.seq`` (insert order, immutable).  Recipients who
    turned off weekly meal plan emails or whose address is not sendable
    are skipped.
    """

    def __init__(self, session_factory: sessionmaker, page_size: int = 500) -> None:
        self._session_factory = session_factory
        self._page_size = page_size

    def next_batch(
        self,
        campaign_key: str,
        after_index: int,
        max_count: int,
        after_cursor: int | None = None,
    ) -> list[EligibleRecipient]:
        if max_count <= 0:
            return []
        week = week_from_campaign_key(campaign_key)

        if after_cursor is not None:
            skip = 0
            start_seq = after_cursor
        else:
            # Positional resumption has to count eligible rows from the start.
            skip = max(after_index + 1, 0)
            start_seq = None

        batch: list[EligibleRecipient] = []
        skipped_unsendable = 0
        with self._session_factory() as db:
            for recipient, unsendable in self._scan(db, week, start_seq):
                if unsendable:
                    skipped_unsendable += 1
                    continue
                if skip:
                    skip -= 1
                    continue
                batch.append(recipient)
                if len(batch) >= max_count:
                    break

        if skipped_unsendable:
            logger.info("Skipped %d recipients with unsendable addresses for %s", skipped_unsendable, campaign_key)
        return batch

    def _scan(self, db, week: date, start_seq: int | None) -> Iterator[tuple[EligibleRecipient, bool]]:
        last_seq = start_seq
        while True:
            stmt = (
                select(MealPlan, Recipient)
                .join(Recipient, MealPlan.recipient_id == Recipient.id)
                .where(
                    MealPlan.week_start_date == week,
                    Recipient.weekly_meal_plans_enabled.is_(True),
                )
                .order_by(MealPlan.seq)
                .limit(self._page_size)
            )
            if last_seq is not None:
                stmt = stmt.where(MealPlan.seq > last_seq)

            rows = db.execute(stmt).all()
            for plan, recipient in rows:
                yield (
                    EligibleRecipient(
                        id=str(recipient.id),
                        delivery_address=recipient.email,
                        name=recipient.name,
                        payload={
                            "meals": plan.meals or {},
                            "meal_settings": recipient.meal_settings or {},
                        },
                        cursor=plan.seq,
                    ),
                    not is_sendable_email(recipient.email),
                )
                last_seq = plan.seq
            if len(rows) < self._page_size:
                return


# ---------------------------------------------------------------------------
# In-memory source
# ---------------------------------------------------------------------------

class InMemoryRecipientSource:
    """List-backed source; each recipient's cursor is its list position."""

    def __init__(self, recipients: Sequence[EligibleRecipient]) -> None:
        self._recipients = [
            dataclasses.replace(r, cursor=i) for i, r in enumerate(recipients)
        ]
        self.calls: list[tuple[str, int, int, int | None]] = []

    def next_batch(
        self,
        campaign_key: str,
        after_index: int,
        max_count: int,
        after_cursor: int | None = None,
    ) -> list[EligibleRecipient]:
        self.calls.append((campaign_key, after_index, max_count, after_cursor))
        start = (after_cursor if after_cursor is not None else after_index) + 1
        return list(self._recipients[start:start + max(max_count, 0)])
