"""Campaign checkpoint store.

One ``campaign_checkpoints`` row per campaign key records how far the
weekly send has progressed.  ``save`` is a read-merge-write; it relies on
the campaign lease for single-writer access rather than on an atomic
database increment.

Outcome sets are de-duplicated and the most recent outcome for a
recipient wins: an id saved as succeeded is removed from ``failed_ids``
and vice versa.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from mealdispatch.campaign.errors import CheckpointError, TransientStoreError
from mealdispatch.db.models import (
    CAMPAIGN_STATUS_COMPLETED,
    CAMPAIGN_STATUS_NOT_STARTED,
    VALID_CAMPAIGN_STATUSES,
    CampaignCheckpoint,
)
from mealdispatch.db.repositories import CampaignCheckpointRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Campaign:
    """Detached snapshot of a ``CampaignCheckpoint`` row."""

    campaign_key: str
    status: str
    last_processed_index: int
    succeeded_ids: tuple[str, ...]
    failed_ids: tuple[str, ...]
    week_start_date: date | None = None
    last_cursor: int | None = None
    last_execution_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == CAMPAIGN_STATUS_COMPLETED

    @classmethod
    def from_row(cls, row: CampaignCheckpoint) -> Campaign:
        return cls(
            campaign_key=row.campaign_key,
            status=row.status,
            last_processed_index=row.last_processed_index,
            succeeded_ids=tuple(row.succeeded_ids or ()),
            failed_ids=tuple(row.failed_ids or ()),
            week_start_date=row.week_start_date,
            last_cursor=row.last_cursor,
            last_execution_id=row.last_execution_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
            completed_at=row.completed_at,
        )


def _merge_outcomes(
    existing: Iterable[str],
    added: Iterable[str],
    superseded: Iterable[str],
) -> list[str]:
    """Append *added* to *existing* in order, dropping duplicates and *superseded* ids."""
    drop = set(superseded)
    seen: set[str] = set()
    merged: list[str] = []
    for rid in (*existing, *added):
        if rid in drop or rid in seen:
            continue
        seen.add(rid)
        merged.append(rid)
    return merged


class CheckpointStore:
    """Load, initialise, and advance campaign checkpoints."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, campaign_key: str) -> Campaign | None:
        try:
            with self._session_factory() as db:
                row = CampaignCheckpointRepository(db).get(campaign_key)
                return Campaign.from_row(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"Failed to read checkpoint {campaign_key}") from exc

    def load_or_init(self, campaign_key: str, week_start: date | None = None) -> Campaign:
        """Return the checkpoint for *campaign_key*, creating a NOT_STARTED one if absent."""
        try:
            with self._session_factory() as db, db.begin():
                repo = CampaignCheckpointRepository(db)
                row = repo.get(campaign_key)
                if row is None:
                    row = repo.create(
                        campaign_key=campaign_key,
                        week_start_date=week_start,
                        status=CAMPAIGN_STATUS_NOT_STARTED,
                        last_processed_index=-1,
                        succeeded_ids=[],
                        failed_ids=[],
                    )
                    db.refresh(row)
                    logger.info("Initialised checkpoint %s", campaign_key)
                return Campaign.from_row(row)
        except IntegrityError:
            # Another writer created it between our read and insert.
            existing = self.get(campaign_key)
            if existing is None:
                raise TransientStoreError(f"Checkpoint {campaign_key} vanished after concurrent init")
            return existing
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"Failed to load checkpoint {campaign_key}") from exc

    def save(
        self,
        campaign_key: str,
        last_processed_index: int,
        new_succeeded: Iterable[str],
        new_failed: Iterable[str],
        status: str,
        *,
        last_cursor: int | None = None,
        execution_id: str | None = None,
    ) -> Campaign:
        """Merge a batch's outcomes into the checkpoint and advance its offset.

        Raises ``CheckpointError`` if the checkpoint is missing, already
        ``COMPLETED``, or *last_processed_index* would move backwards.
        """
        if status not in VALID_CAMPAIGN_STATUSES:
            raise ValueError(
                f"Invalid status {status!r}; must be one of {sorted(VALID_CAMPAIGN_STATUSES)}"
            )
        succeeded = [str(rid) for rid in new_succeeded]
        failed = [str(rid) for rid in new_failed]

        try:
            with self._session_factory() as db, db.begin():
                repo = CampaignCheckpointRepository(db)
                row = repo.get_for_update(campaign_key)
                if row is None:
                    raise CheckpointError(f"No checkpoint exists for {campaign_key}")
                if row.status == CAMPAIGN_STATUS_COMPLETED:
                    raise CheckpointError(f"Checkpoint {campaign_key} is completed and immutable")
                if last_processed_index < row.last_processed_index:
                    raise CheckpointError(
                        f"Checkpoint {campaign_key} cannot move back from index "
                        f"{row.last_processed_index} to {last_processed_index}"
                    )

                changes: dict = {
                    "last_processed_index": last_processed_index,
                    "status": status,
                    "succeeded_ids": _merge_outcomes(row.succeeded_ids or [], succeeded, failed),
                    "failed_ids": _merge_outcomes(row.failed_ids or [], failed, succeeded),
                    "updated_at": datetime.now(timezone.utc),
                }
                if last_cursor is not None:
                    changes["last_cursor"] = last_cursor
                if execution_id is not None:
                    changes["last_execution_id"] = execution_id
                if status == CAMPAIGN_STATUS_COMPLETED:
                    changes["completed_at"] = datetime.now(timezone.utc)

                repo.update(row, **changes)
                snapshot = Campaign.from_row(row)
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"Failed to save checkpoint {campaign_key}") from exc

        logger.info(
            "Checkpoint %s saved: index=%d status=%s (+%d ok, +%d failed)",
            campaign_key, last_processed_index, status, len(succeeded), len(failed),
        )
        return snapshot
