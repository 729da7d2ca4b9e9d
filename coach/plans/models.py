from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from coach.config.constants import DAYS_OF_WEEK, DEFAULT_SESSION_LENGTH_MIN, PLAN_GENERATOR_TAG

DayOfWeek = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
WorkoutType = Literal["upper_body", "lower_body", "full_body", "cardio", "rest"]
PlanStatus = Literal["active", "paused", "archived"]
DisplayStatus = Literal["active", "paused", "archived", "expired"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire (tool schemas and HTTP bodies)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlanExercise(CamelModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    sets: int = Field(ge=1, le=20)
    reps: int = Field(ge=1, le=100)
    notes: Optional[str] = None


class DaySchedule(CamelModel):
    day_of_week: DayOfWeek
    workout_type: WorkoutType
    workout_name: str
    exercises: List[PlanExercise] = Field(default_factory=list)

    @field_validator("day_of_week", mode="before")
    @classmethod
    def _lower_day(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class DayUpdate(CamelModel):
    workout_type: Optional[WorkoutType] = None
    workout_name: Optional[str] = None
    exercises: Optional[List[PlanExercise]] = None


class PlanExerciseUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    sets: Optional[int] = Field(default=None, ge=1, le=20)
    reps: Optional[int] = Field(default=None, ge=1, le=100)
    notes: Optional[str] = None


class WorkoutPlan(CamelModel):
    id: str
    user_id: str
    name: str
    generated_at: datetime
    generated_by: str = PLAN_GENERATOR_TAG
    status: PlanStatus
    workout_schedule: List[DaySchedule]
    valid_until: datetime
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    extended_at: Optional[datetime] = None
    original_valid_until: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self.status == "active"


class TodayWorkout(CamelModel):
    name: str
    exercises: List[PlanExercise]
    estimated_duration: int
    is_rest_day: bool


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(plan: WorkoutPlan, now: Optional[datetime] = None) -> bool:
    """The one place that decides whether a plan's validity window has passed."""
    now = now or utcnow()
    return _aware(plan.valid_until) < _aware(now)


def effective_status(plan: WorkoutPlan, now: Optional[datetime] = None) -> DisplayStatus:
    if plan.status == "archived":
        return "archived"
    if is_expired(plan, now):
        return "expired"
    return plan.status


def find_day(plan: WorkoutPlan, day_key: str) -> Optional[DaySchedule]:
    key = (day_key or "").strip().lower()
    for day in plan.workout_schedule:
        if day.day_of_week.lower() == key:
            return day
    return None


def todays_workout(
    plan: WorkoutPlan,
    now: Optional[datetime] = None,
    session_length: Optional[int] = None,
) -> Optional[TodayWorkout]:
    now = now or utcnow()
    day = find_day(plan, DAYS_OF_WEEK[now.weekday()])
    if day is None:
        return None
    return TodayWorkout(
        name=day.workout_name,
        exercises=day.exercises,
        estimated_duration=session_length or DEFAULT_SESSION_LENGTH_MIN,
        is_rest_day=day.workout_type == "rest",
    )
