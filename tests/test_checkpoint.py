"""Tests for mealdispatch/campaign/checkpoint.py."""
from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from mealdispatch.campaign.checkpoint import CheckpointStore
from mealdispatch.campaign.errors import CheckpointError, TransientStoreError
from mealdispatch.db.models import (
    CAMPAIGN_STATUS_COMPLETED,
    CAMPAIGN_STATUS_IN_PROGRESS,
    CAMPAIGN_STATUS_NOT_STARTED,
)

KEY = "weekly-meal-plans_2026-10-19"
WEEK = date(2026, 10, 19)


@pytest.fixture()
def store(session_factory) -> CheckpointStore:
    return CheckpointStore(session_factory)


# ===========================================================================
# load_or_init
# ===========================================================================

class TestLoadOrInit:
    def test_creates_not_started_checkpoint(self, store):
        campaign = store.load_or_init(KEY, WEEK)

        assert campaign.campaign_key == KEY
        assert campaign.status == CAMPAIGN_STATUS_NOT_STARTED
        assert campaign.last_processed_index == -1
        assert campaign.succeeded_ids == ()
        assert campaign.failed_ids == ()
        assert campaign.week_start_date == WEEK
        assert campaign.created_at is not None

    def test_returns_existing_checkpoint_unchanged(self, store):
        store.load_or_init(KEY, WEEK)
        store.save(KEY, 9, ["a", "b"], ["c"], CAMPAIGN_STATUS_IN_PROGRESS)

        campaign = store.load_or_init(KEY, WEEK)

        assert campaign.last_processed_index == 9
        assert campaign.status == CAMPAIGN_STATUS_IN_PROGRESS
        assert campaign.succeeded_ids == ("a", "b")
        assert campaign.failed_ids == ("c",)

    def test_get_missing_returns_none(self, store):
        assert store.get(KEY) is None

    def test_database_error_raises_transient_store_error(self):
        factory = MagicMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
        store = CheckpointStore(factory)

        with pytest.raises(TransientStoreError):
            store.load_or_init(KEY, WEEK)


# ===========================================================================
# save
# ===========================================================================

class TestSave:
    def test_appends_outcomes_across_saves(self, store):
        store.load_or_init(KEY, WEEK)
        store.save(KEY, 1, ["a"], ["b"], CAMPAIGN_STATUS_IN_PROGRESS)
        campaign = store.save(KEY, 3, ["c"], ["d"], CAMPAIGN_STATUS_IN_PROGRESS)

        assert campaign.succeeded_ids == ("a", "c")
        assert campaign.failed_ids == ("b", "d")
        assert campaign.last_processed_index == 3

    def test_duplicate_ids_are_recorded_once(self, store):
        store.load_or_init(KEY, WEEK)
        store.save(KEY, 1, ["a", "a"], [], CAMPAIGN_STATUS_IN_PROGRESS)
        campaign = store.save(KEY, 2, ["a"], [], CAMPAIGN_STATUS_IN_PROGRESS)

        assert campaign.succeeded_ids == ("a",)

    def test_most_recent_outcome_wins(self, store):
        store.load_or_init(KEY, WEEK)
        store.save(KEY, 1, ["a"], ["b"], CAMPAIGN_STATUS_IN_PROGRESS)
        campaign = store.save(KEY, 1, ["b"], ["a"], CAMPAIGN_STATUS_IN_PROGRESS)

        assert campaign.succeeded_ids == ("b",)
        assert campaign.failed_ids == ("a",)

    def test_stores_cursor_and_execution_id(self, store):
        store.load_or_init(KEY, WEEK)
        campaign = store.save(
            KEY, 4, ["a"], [], CAMPAIGN_STATUS_IN_PROGRESS, last_cursor=42, execution_id="exec-1",
        )

        assert campaign.last_cursor == 42
        assert campaign.last_execution_id == "exec-1"

    def test_cursor_is_kept_when_not_supplied(self, store):
        store.load_or_init(KEY, WEEK)
        store.save(KEY, 4, [], [], CAMPAIGN_STATUS_IN_PROGRESS, last_cursor=42)
        campaign = store.save(KEY, 4, [], [], CAMPAIGN_STATUS_IN_PROGRESS)

        assert campaign.last_cursor == 42

    def test_completed_sets_completed_at(self, store):
        store.load_or_init(KEY, WEEK)
        campaign = store.save(KEY, 0, ["a"], [], CAMPAIGN_STATUS_COMPLETED)

        assert campaign.is_completed
        assert campaign.completed_at is not None

    def test_completed_checkpoint_is_immutable(self, store):
        store.load_or_init(KEY, WEEK)
        store.save(KEY, 0, ["a"], [], CAMPAIGN_STATUS_COMPLETED)

        with pytest.raises(CheckpointError, match="immutable"):
            store.save(KEY, 5, ["b"], [], CAMPAIGN_STATUS_IN_PROGRESS)

        campaign = store.get(KEY)
        assert campaign.last_processed_index == 0
        assert campaign.succeeded_ids == ("a",)

    def test_index_regression_is_rejected(self, store):
        store.load_or_init(KEY, WEEK)
        store.save(KEY, 10, [], [], CAMPAIGN_STATUS_IN_PROGRESS)

        with pytest.raises(CheckpointError, match="cannot move back"):
            store.save(KEY, 5, ["x"], [], CAMPAIGN_STATUS_IN_PROGRESS)

        assert store.get(KEY).last_processed_index == 10
        assert store.get(KEY).succeeded_ids == ()

    def test_save_without_checkpoint_is_rejected(self, store):
        with pytest.raises(CheckpointError, match="No checkpoint"):
            store.save(KEY, 0, [], [], CAMPAIGN_STATUS_IN_PROGRESS)

    def test_invalid_status_is_rejected(self, store):
        store.load_or_init(KEY, WEEK)

        with pytest.raises(ValueError, match="Invalid status"):
            store.save(KEY, 0, [], [], "DONE")

    def test_index_is_non_decreasing_over_any_sequence_of_saves(self, store):
        store.load_or_init(KEY, WEEK)
        observed = [store.get(KEY).last_processed_index]

        for index in [3, 3, 1, 7, 2, 7, 12, 0, 15]:
            try:
                store.save(KEY, index, [], [], CAMPAIGN_STATUS_IN_PROGRESS)
            except CheckpointError:
                pass
            observed.append(store.get(KEY).last_processed_index)

        assert observed == sorted(observed)
        assert observed[-1] == 15
