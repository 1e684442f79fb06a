"""Read-only campaign progress view."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from mealdispatch.api.deps import get_checkpoint_store
from mealdispatch.campaign.checkpoint import CheckpointStore
from mealdispatch.core.weeks import campaign_key, format_week, parse_week

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


@router.get("/{week_start_date}", summary="Checkpoint for one weekly campaign")
def get_campaign(week_start_date: str, store: CheckpointStore = Depends(get_checkpoint_store)):
    try:
        week = parse_week(week_start_date)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid week: {week_start_date!r}")

    campaign = store.get(campaign_key(week))
    if campaign is None:
        raise HTTPException(status_code=404, detail=f"No campaign for week {format_week(week)}")

    return {
        "campaign_key": campaign.campaign_key,
        "week_start_date": format_week(week),
        "status": campaign.status,
        "last_processed_index": campaign.last_processed_index,
        "succeeded_count": len(campaign.succeeded_ids),
        "failed_count": len(campaign.failed_ids),
        "last_execution_id": campaign.last_execution_id,
        "created_at": campaign.created_at.isoformat() if campaign.created_at else None,
        "updated_at": campaign.updated_at.isoformat() if campaign.updated_at else None,
        "completed_at": campaign.completed_at.isoformat() if campaign.completed_at else None,
    }
