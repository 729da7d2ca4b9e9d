from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Optional

from coach.plans.models import WorkoutPlan, effective_status, utcnow

SYSTEM_PROMPT = """You are a friendly, encouraging fitness coach helping the user build and
follow a weekly workout plan.

Your responsibilities:
1. Create personalized 7-day workout plans that fit the user's goals, equipment and schedule.
2. Answer questions about exercises, modifications, and the current plan.
3. Adjust individual days or exercises when the user asks.

Tools:
- Use query_exercise_library to find exercises and get_exercise_details for instructions.
  Only program exercises that exist in the user's library.
- Use save_workout_plan to propose a complete plan. Always include all 7 days, monday
  through sunday, and mark rest days with workout type "rest" and no exercises.
- Use update_day_schedule to replace one day, and update_exercise to change sets, reps,
  name or notes of one exercise. Exercise ids are unique within a day only.
- Use add_exercise_to_library when the user describes an exercise that is missing.

Plan changes are applied only after the user confirms them in the app, so briefly
describe what you changed when you call a write tool.

Safety:
- Prefer joint-friendly options for users who report pain or limited mobility.
- Never give medical advice; suggest talking to a doctor for injuries or chest pain.

Keep replies short, warm, and practical."""

NO_ACTIVE_PLAN = "The user has no active workout plan."


def _format_user_context(user_context: Optional[Dict[str, Any]]) -> str:
    if not user_context:
        return "User profile: not provided."
    parts = []
    for key, value in user_context.items():
        if value in (None, "", [], {}):
            continue
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(item) for item in value)
        parts.append(f"- {key}: {value}")
    if not parts:
        return "User profile: not provided."
    return "User profile:\n" + "\n".join(parts)


def _format_plan(plan: Optional[WorkoutPlan], now: datetime) -> str:
    if plan is None:
        return NO_ACTIVE_PLAN
    schedule = [day.model_dump(mode="json", by_alias=True) for day in plan.workout_schedule]
    return (
        f'Current plan: "{plan.name}" (status: {effective_status(plan, now)}, '
        f"valid until {plan.valid_until.date().isoformat()})\n"
        f"Schedule JSON:\n{json.dumps(schedule, indent=2)}"
    )


def build_system_prompt(
    user_context: Optional[Dict[str, Any]],
    plan: Optional[WorkoutPlan],
    library_summary: str,
    now: Optional[datetime] = None,
) -> str:
    now = now or utcnow()
    return "\n\n".join(
        [
            SYSTEM_PROMPT,
            f"Today is {now.strftime('%A, %B %d, %Y')}.",
            _format_user_context(user_context),
            _format_plan(plan, now),
            library_summary,
        ]
    )
