"""Scheduler trigger for the weekly meal plan campaign.

The external scheduler calls ``/cron/weekly-meal-plans`` with
``Authorization: Bearer <CRON_SECRET>``.  Each call is one short
invocation of the campaign runner; overlapping calls are resolved by
the campaign lease and simply report ``skipped``.
"""
from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse

from mealdispatch.api.deps import get_campaign_runner_factory
from mealdispatch.campaign.runner import CampaignRunner, RunSummary
from mealdispatch.core.security import verify_bearer_secret
from mealdispatch.core.settings import get_settings
from mealdispatch.core.weeks import parse_week

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    if not verify_bearer_secret(authorization, get_settings().cron_secret):
        logger.warning("Rejected cron trigger with missing or invalid secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route(
    "/weekly-meal-plans",
    methods=["GET", "POST"],
    summary="Run one invocation of the weekly meal plan email campaign",
    dependencies=[Depends(require_cron_secret)],
)
def trigger_weekly_meal_plans(
    week: str | None = Query(default=None, description="Any date in the target week (YYYY-MM-DD)"),
    build_runner: Callable[[], CampaignRunner] = Depends(get_campaign_runner_factory),
):
    week_start = None
    if week is not None:
        try:
            week_start = parse_week(week)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid week: {week!r}; expected YYYY-MM-DD")

    try:
        runner = build_runner()
    except ValueError as exc:
        summary = RunSummary.for_week(week_start)
        logger.error("[%s] Campaign runner could not be configured: %s", summary.execution_id, exc)
        summary.message = "Campaign run failed"
        summary.error = f"ConfigurationError: {exc}"
        return JSONResponse(status_code=500, content=summary.to_payload())

    summary = runner.run(week_start=week_start)
    status_code = 200 if summary.ok else 500
    return JSONResponse(status_code=status_code, content=summary.to_payload())
