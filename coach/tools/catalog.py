"""
The fixed set of tools the coach model may call.

Read tools are answered on the server during the same turn. Write tools are
acknowledged to the model with a placeholder result and handed back to the
caller, which applies them after the user has had a chance to confirm.

Every tool input is a pydantic model. The JSON schema sent to the model is
generated from the same model that later re-validates the call, so the enum
constraints cannot drift apart.
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from coach.errors import ValidationFailure
from coach.library.models import DifficultyLevel, EquipmentType, ExerciseFilters, MuscleGroup
from coach.plans.lifecycle import validate_schedule
from coach.plans.models import (
    CamelModel,
    DayOfWeek,
    DaySchedule,
    PlanExercise,
    PlanExerciseUpdate,
    WorkoutType,
)


class QueryExerciseLibraryInput(ExerciseFilters):
    """Search the user's exercise library. All provided filters must match."""


class GetExerciseDetailsInput(CamelModel):
    """Get full instructions and tips for one exercise, looked up by name."""

    exercise_name: str = Field(min_length=1)


class SaveWorkoutPlanInput(CamelModel):
    """Save a complete 7-day workout plan. Replaces the user's active plan once they confirm."""

    workout_schedule: List[DaySchedule] = Field(min_length=7, max_length=7)

    @field_validator("workout_schedule")
    @classmethod
    def _one_entry_per_day(cls, value: List[DaySchedule]) -> List[DaySchedule]:
        try:
            validate_schedule(value)
        except ValidationFailure as exc:
            raise ValueError(str(exc)) from exc
        return value


class UpdateDayScheduleInput(CamelModel):
    """Replace the workout for a single day of the active plan."""

    day_of_week: DayOfWeek
    workout_type: WorkoutType
    workout_name: str
    exercises: List[PlanExercise] = Field(default_factory=list)


class UpdateExerciseInput(CamelModel):
    """Change sets, reps, name or notes of one exercise on one day of the active plan."""

    day_of_week: DayOfWeek
    exercise_id: str = Field(min_length=1)
    updates: PlanExerciseUpdate


class AddExerciseToLibraryInput(CamelModel):
    """Add a custom exercise to the user's library."""

    name: str = Field(min_length=1, max_length=200)
    primary_muscles: List[MuscleGroup] = Field(min_length=1)
    secondary_muscles: List[MuscleGroup] = Field(default_factory=list)
    equipment_required: List[EquipmentType]
    difficulty: DifficultyLevel
    instructions: List[str] = Field(min_length=1)
    tips: List[str] = Field(default_factory=list)


class QueryExerciseLibraryAction(BaseModel):
    tool: Literal["query_exercise_library"] = "query_exercise_library"
    input: QueryExerciseLibraryInput


class GetExerciseDetailsAction(BaseModel):
    tool: Literal["get_exercise_details"] = "get_exercise_details"
    input: GetExerciseDetailsInput


class SaveWorkoutPlanAction(BaseModel):
    tool: Literal["save_workout_plan"] = "save_workout_plan"
    input: SaveWorkoutPlanInput


class UpdateDayScheduleAction(BaseModel):
    tool: Literal["update_day_schedule"] = "update_day_schedule"
    input: UpdateDayScheduleInput


class UpdateExerciseAction(BaseModel):
    tool: Literal["update_exercise"] = "update_exercise"
    input: UpdateExerciseInput


class AddExerciseToLibraryAction(BaseModel):
    tool: Literal["add_exercise_to_library"] = "add_exercise_to_library"
    input: AddExerciseToLibraryInput


ToolAction = Annotated[
    Union[
        QueryExerciseLibraryAction,
        GetExerciseDetailsAction,
        SaveWorkoutPlanAction,
        UpdateDayScheduleAction,
        UpdateExerciseAction,
        AddExerciseToLibraryAction,
    ],
    Field(discriminator="tool"),
]

TOOL_INPUTS: Dict[str, type[CamelModel]] = {
    "query_exercise_library": QueryExerciseLibraryInput,
    "get_exercise_details": GetExerciseDetailsInput,
    "save_workout_plan": SaveWorkoutPlanInput,
    "update_day_schedule": UpdateDayScheduleInput,
    "update_exercise": UpdateExerciseInput,
    "add_exercise_to_library": AddExerciseToLibraryInput,
}
READ_TOOLS = frozenset({"query_exercise_library", "get_exercise_details"})
WRITE_TOOLS = frozenset(TOOL_INPUTS) - READ_TOOLS

_TOOL_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(ToolAction)


def _tool_spec(name: str, model: type[CamelModel]) -> Dict[str, Any]:
    schema = model.model_json_schema(by_alias=True)
    description = schema.pop("description", "") or ""
    schema.pop("title", None)
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description.strip(),
            "parameters": schema,
        },
    }


TOOL_SPECS: List[Dict[str, Any]] = [_tool_spec(name, model) for name, model in TOOL_INPUTS.items()]


def _describe_validation_error(name: str, exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("input", name))
    if location:
        return f"{location}: {first.get('msg')}"
    return str(first.get("msg"))


def parse_tool_action(payload: Dict[str, Any]) -> Any:
    """Validate a ``{"tool": ..., "input": {...}}`` payload into its typed action."""
    if not isinstance(payload, dict):
        raise ValidationFailure("Tool action must be an object.")
    name = payload.get("tool")
    if name not in TOOL_INPUTS:
        raise ValidationFailure(f"Unknown tool: {name}")
    try:
        return _TOOL_ACTION_ADAPTER.validate_python({"tool": name, "input": payload.get("input") or {}})
    except ValidationError as exc:
        raise ValidationFailure(f"Invalid input for {name}: {_describe_validation_error(name, exc)}") from exc


def parse_tool_call(name: str, args: Optional[Dict[str, Any]]) -> Any:
    return parse_tool_action({"tool": name, "input": args or {}})


def is_read_action(action: Any) -> bool:
    return isinstance(action, (QueryExerciseLibraryAction, GetExerciseDetailsAction))


def action_payload(action: Any) -> Dict[str, Any]:
    """Wire form of an action, camelCase, with only the fields the model supplied."""
    return {
        "tool": action.tool,
        "input": action.input.model_dump(mode="json", by_alias=True, exclude_unset=True),
    }


def write_placeholder(tool_name: str) -> str:
    return f"{tool_name} saved successfully"
