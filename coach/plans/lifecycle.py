"""
Workout plan state machine.

Stored status moves between ``active``, ``paused`` and ``archived``:

    active <-> paused
    active / paused -> archived
    archived -> active          (restore, via resume)

Expiry is never stored. A plan whose ``valid_until`` has passed keeps its
status until something acts on it; see ``models.is_expired``.

Every function here is pure: it takes a plan and returns an updated copy.
Persistence and the single-active-plan invariant live in ``store.py``.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from coach.config.constants import (
    DAYS_OF_WEEK,
    DEFAULT_PLAN_VALIDITY_DAYS,
    PLAN_GENERATOR_TAG,
    RESUME_EXTENSION_DAYS,
)
from coach.errors import NotFound, ValidationFailure
from coach.plans.models import (
    DaySchedule,
    DayUpdate,
    PlanExerciseUpdate,
    WorkoutPlan,
    find_day,
    is_expired,
    utcnow,
)

logger = logging.getLogger(__name__)


def default_plan_name(now: datetime) -> str:
    return f"Program - {now.strftime('%b')} {now.day}, {now.year}"


def validate_schedule(schedule: Iterable[Any]) -> List[DaySchedule]:
    """Coerce a weekly schedule and require exactly one entry per weekday."""
    try:
        days = [day if isinstance(day, DaySchedule) else DaySchedule.model_validate(day) for day in schedule]
    except ValidationError as exc:
        raise ValidationFailure(f"Invalid workout schedule: {exc.errors()[0]['msg']}") from exc
    seen = [day.day_of_week for day in days]
    if len(days) != 7 or set(seen) != set(DAYS_OF_WEEK):
        raise ValidationFailure("Workout schedule must contain exactly one entry for each of the 7 days.")
    for day in days:
        if day.workout_type == "rest" and day.exercises:
            logger.warning("Rest day %s carries %s exercises", day.day_of_week, len(day.exercises))
    order = {name: index for index, name in enumerate(DAYS_OF_WEEK)}
    return sorted(days, key=lambda d: order[d.day_of_week])


def new_plan(
    user_id: str,
    schedule: Iterable[Any],
    now: Optional[datetime] = None,
    valid_until: Optional[datetime] = None,
    name: Optional[str] = None,
    generated_by: str = PLAN_GENERATOR_TAG,
) -> WorkoutPlan:
    now = now or utcnow()
    return WorkoutPlan(
        id=uuid.uuid4().hex,
        user_id=user_id,
        name=(name or "").strip() or default_plan_name(now),
        generated_at=now,
        generated_by=generated_by,
        status="active",
        workout_schedule=validate_schedule(schedule),
        valid_until=valid_until or now + timedelta(days=DEFAULT_PLAN_VALIDITY_DAYS),
        started_at=now,
    )


def pause(plan: WorkoutPlan, now: Optional[datetime] = None) -> WorkoutPlan:
    if plan.status == "paused":
        return plan
    if plan.status == "archived":
        raise ValidationFailure("An archived plan cannot be paused.")
    return plan.model_copy(update={"status": "paused", "paused_at": now or utcnow()})


def _extension_fields(plan: WorkoutPlan, new_valid_until: datetime, now: datetime) -> Dict[str, Any]:
    update: Dict[str, Any] = {"valid_until": new_valid_until, "extended_at": now}
    if plan.original_valid_until is None:
        update["original_valid_until"] = plan.valid_until
    return update


def resume(plan: WorkoutPlan, now: Optional[datetime] = None) -> WorkoutPlan:
    """Activate a paused or archived plan. An expired plan gets one more week from now."""
    now = now or utcnow()
    update: Dict[str, Any] = {"status": "active", "resumed_at": now, "paused_at": None}
    if is_expired(plan, now):
        update.update(_extension_fields(plan, now + timedelta(days=RESUME_EXTENSION_DAYS), now))
    return plan.model_copy(update=update)


def archive(plan: WorkoutPlan, now: Optional[datetime] = None) -> WorkoutPlan:
    return plan.model_copy(update={"status": "archived", "archived_at": now or utcnow()})


def extend(plan: WorkoutPlan, weeks: int, now: Optional[datetime] = None) -> WorkoutPlan:
    if weeks < 1:
        raise ValidationFailure("Extension must be at least one week.")
    if plan.status == "archived":
        raise ValidationFailure("An archived plan cannot be extended.")
    now = now or utcnow()
    return plan.model_copy(update=_extension_fields(plan, plan.valid_until + timedelta(weeks=weeks), now))


def rename(plan: WorkoutPlan, name: str) -> WorkoutPlan:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationFailure("Plan name cannot be empty.")
    return plan.model_copy(update={"name": cleaned})


def update_day(plan: WorkoutPlan, day_key: str, updates: DayUpdate) -> WorkoutPlan:
    target = find_day(plan, day_key)
    if target is None:
        raise NotFound(f"Day '{day_key}' not found in plan.")
    changes = updates.model_dump(exclude_none=True, by_alias=False)
    if "exercises" in changes:
        changes["exercises"] = list(updates.exercises or [])
    days = [
        day.model_copy(update=changes) if day is target else day
        for day in plan.workout_schedule
    ]
    return plan.model_copy(update={"workout_schedule": days})


def update_exercise(
    plan: WorkoutPlan,
    day_key: str,
    exercise_id: str,
    updates: PlanExerciseUpdate,
) -> tuple[WorkoutPlan, bool]:
    """Merge field updates into one exercise of one day. Returns (plan, applied)."""
    target = find_day(plan, day_key)
    if target is None:
        raise NotFound(f"Day '{day_key}' not found in plan.")
    if not any(exercise.id == exercise_id for exercise in target.exercises):
        logger.warning(
            "update_exercise skipped: exercise %s not found on %s of plan %s",
            exercise_id,
            target.day_of_week,
            plan.id,
        )
        return plan, False
    changes = {
        key: value
        for key, value in updates.model_dump(exclude_unset=True, by_alias=False).items()
        if value is not None or key == "notes"
    }
    exercises = [
        exercise.model_copy(update=changes) if exercise.id == exercise_id else exercise
        for exercise in target.exercises
    ]
    days = [
        day.model_copy(update={"exercises": exercises}) if day is target else day
        for day in plan.workout_schedule
    ]
    return plan.model_copy(update={"workout_schedule": days}), True
