#!/usr/bin/env python3
"""Seed demo data: 12 recipients with meal plans for the current week.

Two of the recipients are ineligible (one opted out, one placeholder
address) so a demo run exercises the recipient filters.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py
"""
from __future__ import annotations

import sys
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from mealdispatch.core.settings import get_settings
from mealdispatch.core.weeks import format_week, week_start_date
from mealdispatch.db.base import Base
from mealdispatch.db.models import MealPlan, Recipient

_DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_DISHES = {
    "breakfast": ["Poha", "Upma", "Idli Sambar", "Aloo Paratha", "Masala Oats", "Besan Chilla", "Dosa"],
    "lunch": ["Rajma Chawal", "Dal Tadka", "Chole Rice", "Veg Pulao", "Kadhi Chawal", "Palak Paneer", "Sambar Rice"],
    "dinner": ["Paneer Tikka", "Mixed Veg Curry", "Khichdi", "Bhindi Masala", "Dal Makhani", "Aloo Gobi", "Veg Biryani"],
}


def _week_meals(offset: int) -> dict:
    meals: dict = {}
    for i, day in enumerate(_DAYS):
        meals[day] = {
            meal_type: dishes[(i + offset) % len(dishes)]
            for meal_type, dishes in _DISHES.items()
        }
    return meals


def seed(session: Session) -> None:
    """Insert demo recipients and one meal plan per recipient for this week."""
    week = week_start_date()

    demo_people = [
        # (name, email, opted_in)
        ("Aarav Mehta", "aarav.mehta@mealmail.io", True),
        ("Diya Sharma", "diya.sharma@mealmail.io", True),
        ("Kabir Singh", "kabir.singh@mealmail.io", True),
        ("Ananya Iyer", "ananya.iyer@mealmail.io", True),
        ("Rohan Gupta", "rohan.gupta@mealmail.io", True),
        ("Meera Nair", "meera.nair@mealmail.io", True),
        ("Vihaan Rao", "vihaan.rao@mealmail.io", True),
        ("Isha Verma", "isha.verma@mealmail.io", True),
        ("Arjun Das", "arjun.das@mealmail.io", True),
        ("Sara Khan", "sara.khan@mealmail.io", True),
        ("Opted Out", "opted.out@mealmail.io", False),
        ("Placeholder", "test@example.com", True),
    ]

    for offset, (name, email, opted_in) in enumerate(demo_people):
        recipient = Recipient(
            id=uuid4(),
            name=name,
            email=email,
            weekly_meal_plans_enabled=opted_in,
            meal_settings={"enabledMealTypes": ["breakfast", "lunch", "dinner"]},
        )
        session.add(recipient)
        session.flush()
        session.add(
            MealPlan(
                recipient_id=recipient.id,
                week_start_date=week,
                meals=_week_meals(offset),
                ai_generated=True,
            )
        )

    session.commit()
    print(f"Seeded {len(demo_people)} Recipients with MealPlans for week {format_week(week)}.")


def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session)


if __name__ == "__main__":
    main()
