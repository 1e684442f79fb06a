"""Week arithmetic for campaign keys.

Weeks start on Monday.  A campaign is keyed by the ISO date of the
Monday of its target week.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

CAMPAIGN_KEY_PREFIX = "weekly-meal-plans"


def week_start_date(day: date | datetime | None = None) -> date:
    """Return the Monday on or before *day* (defaults to today, UTC)."""
    if day is None:
        day = datetime.now(timezone.utc)
    if isinstance(day, datetime):
        day = day.date()
    return day - timedelta(days=day.weekday())


def format_week(week_start: date) -> str:
    return week_start.strftime("%Y-%m-%d")


def parse_week(value: str) -> date:
    """Parse ``YYYY-MM-DD`` and normalise it to that week's Monday."""
    return week_start_date(datetime.strptime(value, "%Y-%m-%d").date())


def campaign_key(week_start: date) -> str:
    return f"{CAMPAIGN_KEY_PREFIX}_{format_week(week_start)}"


def week_range_label(week_start: date) -> str:
    """Human label such as ``Mar 3 - Mar 9, 2025``."""
    week_end = week_start + timedelta(days=6)
    return f"{week_start.strftime('%b')} {week_start.day} - {week_end.strftime('%b')} {week_end.day}, {week_end.year}"


def week_from_campaign_key(key: str) -> date:
    prefix, sep, week = key.rpartition("_")
    if not sep or prefix != CAMPAIGN_KEY_PREFIX:
        raise ValueError(f"Not a weekly campaign key: {key!r}")
    return datetime.strptime(week, "%Y-%m-%d").date()
