from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

from coach.db.retry import with_retry
from coach.errors import CoachError
from coach.library.models import NewExercise
from coach.library.store import ExerciseLibraryStore
from coach.plans.models import DayUpdate, WorkoutPlan
from coach.plans.store import PlanStore
from coach.tools.catalog import (
    AddExerciseToLibraryAction,
    SaveWorkoutPlanAction,
    UpdateDayScheduleAction,
    UpdateExerciseAction,
    is_read_action,
)

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["applied", "skipped", "declined", "failed"]
ConfirmReplace = Callable[[SaveWorkoutPlanAction, WorkoutPlan], bool]


@dataclass
class ActionOutcome:
    tool: str
    status: OutcomeStatus
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"tool": self.tool, "status": self.status, "detail": self.detail}


@dataclass
class ExecutionReport:
    outcomes: List[ActionOutcome] = field(default_factory=list)
    plan_updated: bool = False
    library_modified: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "planUpdated": self.plan_updated,
            "libraryModified": self.library_modified,
        }


def _title(value: str) -> str:
    return value.replace("_", " ").title()


def describe_action(action: Any) -> str:
    """Preview text shown to the user before a write tool is applied."""
    if isinstance(action, SaveWorkoutPlanAction):
        lines = ["New 7-day workout plan:"]
        for day in action.input.workout_schedule:
            if day.workout_type == "rest":
                lines.append(f"- {_title(day.day_of_week)}: Rest")
            else:
                lines.append(
                    f"- {_title(day.day_of_week)}: {day.workout_name} "
                    f"({len(day.exercises)} exercises)"
                )
        return "\n".join(lines)
    if isinstance(action, UpdateDayScheduleAction):
        data = action.input
        lines = [f"Update {_title(data.day_of_week)} to {data.workout_name} ({_title(data.workout_type)}):"]
        lines.extend(f"- {exercise.name}: {exercise.sets} x {exercise.reps}" for exercise in data.exercises)
        return "\n".join(lines)
    if isinstance(action, UpdateExerciseAction):
        data = action.input
        changes = data.updates.model_dump(exclude_none=True)
        summary = ", ".join(f"{key} -> {value}" for key, value in changes.items()) or "no changes"
        return f"Update exercise {data.exercise_id} on {_title(data.day_of_week)}: {summary}"
    if isinstance(action, AddExerciseToLibraryAction):
        data = action.input
        muscles = ", ".join(_title(muscle) for muscle in data.primary_muscles)
        return f"Add {data.name} ({data.difficulty}, {muscles}) to your exercise library"
    return action.tool


class ClientToolExecutor:
    """Applies write-tool actions in the order the model produced them.

    Each action is isolated: a failure is logged and recorded as ``failed``
    and the remaining actions still run. Replacing an active plan needs the
    user's consent through ``confirm_replace``.
    """

    def __init__(
        self,
        plan_store: PlanStore,
        library_store: ExerciseLibraryStore,
        confirm_replace: ConfirmReplace,
        retry: Callable[[Callable[[], Any]], Any] = with_retry,
    ):
        self.plan_store = plan_store
        self.library_store = library_store
        self.confirm_replace = confirm_replace
        self._retry = retry

    def apply(
        self,
        user_id: str,
        actions: Sequence[Any],
        report: Optional[ExecutionReport] = None,
    ) -> ExecutionReport:
        report = report if report is not None else ExecutionReport()
        for action in actions:
            try:
                outcome = self._apply_one(user_id, action, report)
            except CoachError as exc:
                logger.warning("Tool action %s failed for user %s: %s", action.tool, user_id, exc)
                outcome = ActionOutcome(action.tool, "failed", str(exc))
            except Exception:
                logger.exception("Tool action %s failed for user %s", action.tool, user_id)
                outcome = ActionOutcome(action.tool, "failed", "Unexpected error while applying the change.")
            report.outcomes.append(outcome)
        return report

    def _require_active_plan(self, user_id: str, tool: str) -> Optional[WorkoutPlan]:
        plan = self.plan_store.get_active(user_id)
        if plan is None:
            logger.warning("Skipping %s for user %s: no active plan", tool, user_id)
        return plan

    def _apply_one(self, user_id: str, action: Any, report: ExecutionReport) -> ActionOutcome:
        if is_read_action(action):
            return ActionOutcome(action.tool, "skipped", "Read tools are resolved on the server.")

        if isinstance(action, SaveWorkoutPlanAction):
            active = self.plan_store.get_active(user_id)
            if active is not None and not self.confirm_replace(action, active):
                logger.info("User %s kept active plan %s", user_id, active.id)
                return ActionOutcome(action.tool, "declined", "Kept the current plan.")
            plan_id = self._retry(
                lambda: self.plan_store.create_plan(user_id, action.input.workout_schedule)
            )
            report.plan_updated = True
            return ActionOutcome(action.tool, "applied", plan_id)

        if isinstance(action, UpdateDayScheduleAction):
            active = self._require_active_plan(user_id, action.tool)
            if active is None:
                return ActionOutcome(action.tool, "skipped", "No active plan.")
            data = action.input
            self._retry(
                lambda: self.plan_store.update_day(
                    user_id,
                    active.id,
                    data.day_of_week,
                    DayUpdate(
                        workout_type=data.workout_type,
                        workout_name=data.workout_name,
                        exercises=data.exercises,
                    ),
                )
            )
            report.plan_updated = True
            return ActionOutcome(action.tool, "applied", active.id)

        if isinstance(action, UpdateExerciseAction):
            active = self._require_active_plan(user_id, action.tool)
            if active is None:
                return ActionOutcome(action.tool, "skipped", "No active plan.")
            data = action.input
            applied = self._retry(
                lambda: self.plan_store.update_exercise(
                    user_id, active.id, data.day_of_week, data.exercise_id, data.updates
                )
            )
            if not applied:
                return ActionOutcome(action.tool, "skipped", f"Exercise {data.exercise_id} not found.")
            report.plan_updated = True
            return ActionOutcome(action.tool, "applied", active.id)

        if isinstance(action, AddExerciseToLibraryAction):
            exercise = self.library_store.create(
                user_id,
                NewExercise(**action.input.model_dump(), is_custom=True),
            )
            report.library_modified = True
            return ActionOutcome(action.tool, "applied", exercise.id)

        raise TypeError(f"Unhandled tool action: {action!r}")
