"""Campaign runner -- one scheduler invocation of the weekly send.

State machine per campaign key: ``NOT_STARTED -> IN_PROGRESS ->
COMPLETED``.  Each invocation:

1. derives the campaign key from the target week;
2. acquires the lease, or reports a skip if someone else holds it;
3. loads (or creates) the checkpoint; a completed campaign is a no-op;
4. pulls the next batch after the checkpoint's position; an empty batch
   completes the campaign;
5. renders and dispatches the batch at the configured rate;
6. saves the new position and outcomes -- a short batch means the
   recipients are exhausted and the campaign is completed;
7. releases the lease, whatever happened.

Steps 4-6 repeat while ``max_batches_per_invocation`` and the wall-clock
budget allow.  Errors abort the invocation without internal retries;
the next trigger resumes from the checkpoint.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from functools import partial
from uuid import uuid4

from mealdispatch.campaign.checkpoint import CheckpointStore
from mealdispatch.campaign.dispatcher import RateLimitedDispatcher
from mealdispatch.campaign.lease import LeaseManager
from mealdispatch.campaign.recipients import RecipientSource
from mealdispatch.core.weeks import campaign_key, format_week, week_start_date
from mealdispatch.db.models import CAMPAIGN_STATUS_COMPLETED, CAMPAIGN_STATUS_IN_PROGRESS
from mealdispatch.notification.renderer import MealPlanRenderer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunnerConfig:
    batch_size: int = 140
    per_second_limit: int = 14
    lease_ttl_ms: int = 120_000
    invocation_budget_seconds: float = 55.0
    budget_safety_ratio: float = 0.9
    max_batches_per_invocation: int = 1

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.per_second_limit <= 0:
            raise ValueError("per_second_limit must be positive")
        if self.max_batches_per_invocation <= 0:
            raise ValueError("max_batches_per_invocation must be positive")
        if self.invocation_budget_seconds <= 0:
            raise ValueError("invocation_budget_seconds must be positive")
        if not 0 < self.budget_safety_ratio <= 1:
            raise ValueError("budget_safety_ratio must be in (0, 1]")
        if self.lease_ttl_ms <= self.invocation_budget_seconds * 1000:
            raise ValueError("lease_ttl_ms must exceed the invocation budget")

    @property
    def budget_seconds(self) -> float:
        return self.invocation_budget_seconds * self.budget_safety_ratio

    @classmethod
    def from_settings(cls, settings) -> RunnerConfig:
        return cls(
            batch_size=settings.batch_size,
            per_second_limit=settings.send_rate_per_second,
            lease_ttl_ms=settings.lease_ttl_seconds * 1000,
            invocation_budget_seconds=settings.invocation_budget_seconds,
            budget_safety_ratio=settings.budget_safety_ratio,
            max_batches_per_invocation=settings.max_batches_per_invocation,
        )


@dataclass
class RunSummary:
    """Outcome of one invocation, returned to the trigger caller."""

    execution_id: str
    campaign_key: str
    week_start_date: str
    message: str = ""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    batches: int = 0
    completed: bool = False
    skipped: bool = False
    error: str | None = None

    @classmethod
    def for_week(cls, week_start: date | None = None, execution_id: str | None = None) -> RunSummary:
        week = week_start_date(week_start)
        return cls(
            execution_id=execution_id or uuid4().hex,
            campaign_key=campaign_key(week),
            week_start_date=format_week(week),
        )

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> dict:
        payload = {
            "message": self.message,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "completed": self.completed,
            "skipped": self.skipped,
            "weekStartDate": self.week_start_date,
            "campaignKey": self.campaign_key,
            "executionId": self.execution_id,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


class CampaignRunner:
    """Run one invocation of the weekly meal plan campaign."""

    def __init__(
        self,
        lease_manager: LeaseManager,
        checkpoint_store: CheckpointStore,
        recipient_source: RecipientSource,
        dispatcher: RateLimitedDispatcher,
        renderer: MealPlanRenderer,
        config: RunnerConfig | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.leases = lease_manager
        self.checkpoints = checkpoint_store
        self.recipients = recipient_source
        self.dispatcher = dispatcher
        self.renderer = renderer
        self.config = config or RunnerConfig()
        self._monotonic = monotonic

    def run(self, week_start: date | None = None, execution_id: str | None = None) -> RunSummary:
        week = week_start_date(week_start)
        summary = RunSummary.for_week(week, execution_id)
        key = summary.campaign_key
        eid = summary.execution_id

        lease = self.leases.acquire(key, eid, self.config.lease_ttl_ms)
        if not lease.ok:
            logger.info("[%s] Skipping %s: %s", eid, key, lease.reason)
            summary.skipped = True
            summary.message = f"Skipped - {lease.reason}"
            return summary

        try:
            self._run_locked(key, week, summary)
        except Exception as exc:
            logger.exception("[%s] Campaign %s failed", eid, key)
            summary.error = f"{exc.__class__.__name__}: {exc}"
            summary.message = "Campaign run failed"
        finally:
            self.leases.release(key, eid)

        logger.info(
            "[%s] %s: %s (processed=%d succeeded=%d failed=%d completed=%s)",
            eid, key, summary.message, summary.processed, summary.succeeded,
            summary.failed, summary.completed,
        )
        return summary

    # -- internals ----------------------------------------------------------

    def _budget_exhausted(self, started: float) -> bool:
        return self._monotonic() - started >= self.config.budget_seconds

    def _run_locked(self, key: str, week: date, summary: RunSummary) -> None:
        started = self._monotonic()
        eid = summary.execution_id

        campaign = self.checkpoints.load_or_init(key, week)
        if campaign.is_completed:
            summary.completed = True
            summary.message = "Campaign already completed"
            return

        last_index = campaign.last_processed_index
        cursor = campaign.last_cursor
        render = partial(self.renderer.render, week_start=week)

        while True:
            if summary.batches >= self.config.max_batches_per_invocation:
                summary.message = "Batch processed - more recipients remain"
                return
            # The first batch always runs, so every invocation makes progress.
            if summary.batches > 0 and self._budget_exhausted(started):
                summary.message = "Time budget reached - progress saved"
                return

            batch = self.recipients.next_batch(key, last_index, self.config.batch_size, after_cursor=cursor)
            if not batch:
                self.checkpoints.save(
                    key, last_index, [], [], CAMPAIGN_STATUS_COMPLETED, execution_id=eid,
                )
                summary.completed = True
                summary.message = "Completed - no more recipients"
                return

            logger.info("[%s] Dispatching %d recipients after index %d", eid, len(batch), last_index)
            result = self.dispatcher.dispatch(batch, render, self.config.per_second_limit)

            # Count the sends before saving so a failed save still reports them.
            summary.batches += 1
            summary.processed += len(batch)
            summary.succeeded += len(result.succeeded_ids)
            summary.failed += len(result.failed_ids)

            exhausted = len(batch) < self.config.batch_size
            last_index += len(batch)
            if batch[-1].cursor is not None:
                cursor = batch[-1].cursor
            self.checkpoints.save(
                key,
                last_index,
                result.succeeded_ids,
                result.failed_ids,
                CAMPAIGN_STATUS_COMPLETED if exhausted else CAMPAIGN_STATUS_IN_PROGRESS,
                last_cursor=cursor,
                execution_id=eid,
            )

            if exhausted:
                summary.completed = True
                summary.message = "Completed - all recipients processed"
                return
