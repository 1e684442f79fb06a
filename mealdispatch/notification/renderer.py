"""Weekly meal plan message rendering.

Substitutes a recipient's pre-generated plan into the HTML and plain-text
templates under ``templates/``.  Any problem with a single recipient
(missing address, malformed plan, missing template) surfaces as
``RenderError`` so the dispatcher can fail that recipient alone.
"""
from __future__ import annotations

import html
from datetime import date
from pathlib import Path
from string import Template
from urllib.parse import urlencode

from mealdispatch.campaign.errors import RenderError
from mealdispatch.campaign.recipients import EligibleRecipient
from mealdispatch.core.security import UnsubscribeTokenService
from mealdispatch.core.weeks import format_week, week_range_label
from mealdispatch.notification.email_sender import OutboundMessage

DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"

DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
DEFAULT_MEAL_TYPES = ("breakfast", "lunch", "dinner")
MEAL_TYPE_LABELS: dict[str, str] = {
    "breakfast": "Breakfast",
    "morningSnack": "Morning Snack",
    "lunch": "Lunch",
    "eveningSnack": "Evening Snack",
    "dinner": "Dinner",
}
NOT_PLANNED = "Not planned yet"


def utm_params(link_type: str, week: str) -> dict[str, str]:
    return {
        "utm_source": "email",
        "utm_medium": "weekly_meal_plan",
        "utm_campaign": f"meal_plan_{link_type}",
        "utm_content": week,
    }


def _meal_label(value: object) -> str:
    if isinstance(value, dict):
        name = str(value.get("name") or "").strip()
        calories = value.get("calories")
        if name and calories:
            return f"{name} ({calories} kcal)"
        return name or NOT_PLANNED
    if isinstance(value, str) and value.strip():
        return value.strip()
    return NOT_PLANNED


def _enabled_meal_types(meal_settings: dict) -> list[str]:
    enabled = meal_settings.get("enabledMealTypes") if isinstance(meal_settings, dict) else None
    return list(enabled) if enabled else list(DEFAULT_MEAL_TYPES)


class MealPlanRenderer:
    """Build the weekly meal plan email for one recipient."""

    def __init__(
        self,
        unsubscribe_tokens: UnsubscribeTokenService,
        app_base_url: str,
        template_dir: str | Path = DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self.unsubscribe_tokens = unsubscribe_tokens
        self.app_base_url = app_base_url.rstrip("/")
        self.template_dir = Path(template_dir)
        self._templates: dict[str, Template] = {}

    def _template(self, name: str) -> Template:
        if name not in self._templates:
            path = self.template_dir / name
            if not path.is_file():
                raise RenderError(f"Template {name!r} not found in {self.template_dir}")
            self._templates[name] = Template(path.read_text(encoding="utf-8"))
        return self._templates[name]

    def _html_rows(self, meals: dict, meal_types: list[str]) -> str:
        rows: list[str] = []
        for day in DAYS:
            day_meals = meals.get(day) or {}
            rows.append(
                '            <tr><th colspan="2" style="text-align: left; padding: 8px 0 4px 0; '
                f'border-bottom: 1px solid #e9ecef;">{day.capitalize()}</th></tr>'
            )
            for meal_type in meal_types:
                label = MEAL_TYPE_LABELS.get(meal_type, meal_type)
                rows.append(
                    f'            <tr><td style="padding: 4px 8px 4px 0; color: #6c757d;">{html.escape(label)}</td>'
                    f"<td>{html.escape(_meal_label(day_meals.get(meal_type)))}</td></tr>"
                )
        return "\n".join(rows)

    def _text_rows(self, meals: dict, meal_types: list[str]) -> str:
        lines: list[str] = []
        for day in DAYS:
            day_meals = meals.get(day) or {}
            title = day.capitalize()
            lines.append(title)
            lines.append("=" * len(title))
            for meal_type in meal_types:
                label = MEAL_TYPE_LABELS.get(meal_type, meal_type)
                lines.append(f"{label}: {_meal_label(day_meals.get(meal_type))}")
            lines.append("")
        return "\n".join(lines)

    def unsubscribe_url(self, recipient: EligibleRecipient) -> str:
        token = self.unsubscribe_tokens.issue(recipient.id, recipient.delivery_address)
        return f"{self.app_base_url}/unsubscribe?{urlencode({'token': token})}"

    def render(self, recipient: EligibleRecipient, week_start: date) -> OutboundMessage:
        if not recipient.delivery_address:
            raise RenderError(f"Recipient {recipient.id} has no delivery address")

        meals = recipient.payload.get("meals")
        if not isinstance(meals, dict):
            raise RenderError(f"Recipient {recipient.id} has no meal plan for the week")
        meal_types = _enabled_meal_types(recipient.payload.get("meal_settings") or {})

        week = format_week(week_start)
        user_name = recipient.name or "Valued User"
        plan_url = f"{self.app_base_url}/plan/{week}?{urlencode(utm_params('view_plan', week))}"
        unsubscribe_url = self.unsubscribe_url(recipient)
        week_range = week_range_label(week_start)

        html_body = self._template("weekly_meal_plan.html").safe_substitute(
            user_name=html.escape(user_name),
            week_range=week_range,
            plan_url=html.escape(plan_url),
            unsubscribe_url=html.escape(unsubscribe_url),
            meal_rows=self._html_rows(meals, meal_types),
        )
        text_body = self._template("weekly_meal_plan.txt").safe_substitute(
            user_name=user_name,
            week_range=week_range,
            plan_url=plan_url,
            unsubscribe_url=unsubscribe_url,
            meal_rows=self._text_rows(meals, meal_types),
        )
        return OutboundMessage(
            recipient_id=recipient.id,
            to=recipient.delivery_address,
            subject=f"Your Weekly Meal Plan - Week of {week}",
            html_body=html_body,
            text_body=text_body,
        )
