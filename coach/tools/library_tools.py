from __future__ import annotations

from collections import Counter
from typing import Any, List, Optional, Sequence

from coach.config.constants import QUERY_RESULT_LIMIT
from coach.library.models import ExerciseFilters, LibraryExercise, filter_exercises
from coach.tools.catalog import GetExerciseDetailsAction, QueryExerciseLibraryAction

NO_RESULTS_MESSAGE = "No exercises found matching those criteria. Try broadening the filters."
LIBRARY_UNINITIALIZED = "Exercise library: not initialized yet (no exercises available)."


def _label(value: str) -> str:
    return value.replace("_", " ")


def _exercise_line(exercise: LibraryExercise) -> str:
    equipment = ", ".join(_label(item) for item in exercise.equipment_required) or "none"
    return (
        f"- {exercise.name} ({exercise.difficulty}) | "
        f"primary: {', '.join(_label(m) for m in exercise.primary_muscles)} | "
        f"equipment: {equipment}"
    )


def query_exercise_library(library: Sequence[LibraryExercise], filters: ExerciseFilters) -> str:
    matches = filter_exercises(list(library), filters)
    if not matches:
        return NO_RESULTS_MESSAGE
    shown = matches[:QUERY_RESULT_LIMIT]
    lines = [f"Found {len(matches)} exercise(s):"]
    lines.extend(_exercise_line(exercise) for exercise in shown)
    if len(matches) > QUERY_RESULT_LIMIT:
        lines.append(f"(Showing first {QUERY_RESULT_LIMIT} of {len(matches)} results)")
    return "\n".join(lines)


def find_exercise(library: Sequence[LibraryExercise], name: str) -> Optional[LibraryExercise]:
    """Exact case-insensitive name match, else the first name containing the query."""
    wanted = (name or "").strip().lower()
    if not wanted:
        return None
    for exercise in library:
        if exercise.name.lower() == wanted:
            return exercise
    for exercise in library:
        if wanted in exercise.name.lower():
            return exercise
    return None


def get_exercise_details(library: Sequence[LibraryExercise], name: str) -> str:
    exercise = find_exercise(library, name)
    if exercise is None:
        return f'Exercise "{name}" not found in the library. Use query_exercise_library to see what is available.'
    lines = [
        f"{exercise.name}",
        f"Difficulty: {exercise.difficulty}",
        f"Primary muscles: {', '.join(_label(m) for m in exercise.primary_muscles)}",
    ]
    if exercise.secondary_muscles:
        lines.append(f"Secondary muscles: {', '.join(_label(m) for m in exercise.secondary_muscles)}")
    lines.append(
        f"Equipment: {', '.join(_label(item) for item in exercise.equipment_required) or 'none'}"
    )
    if exercise.instructions:
        lines.append("Instructions:")
        lines.extend(f"{index}. {step}" for index, step in enumerate(exercise.instructions, start=1))
    if exercise.tips:
        lines.append("Tips:")
        lines.extend(f"- {tip}" for tip in exercise.tips)
    if exercise.is_custom:
        lines.append("(Custom exercise)")
    return "\n".join(lines)


def run_read_tool(action: Any, library: Sequence[LibraryExercise]) -> str:
    if isinstance(action, QueryExerciseLibraryAction):
        return query_exercise_library(library, action.input)
    if isinstance(action, GetExerciseDetailsAction):
        return get_exercise_details(library, action.input.exercise_name)
    raise TypeError(f"{action.tool} is not a read tool")


def summarize_library(library: Sequence[LibraryExercise]) -> str:
    """Short description of the catalog for the system prompt."""
    if not library:
        return LIBRARY_UNINITIALIZED
    muscles: Counter[str] = Counter()
    equipment: Counter[str] = Counter()
    custom = 0
    for exercise in library:
        muscles.update(exercise.primary_muscles)
        equipment.update(exercise.equipment_required)
        custom += 1 if exercise.is_custom else 0
    muscle_text = ", ".join(f"{_label(name)} ({count})" for name, count in sorted(muscles.items()))
    equipment_text = ", ".join(_label(name) for name in sorted(equipment))
    lines: List[str] = [
        f"Exercise library: {len(library)} exercises ({custom} custom).",
        f"Muscle coverage: {muscle_text}.",
        f"Equipment available: {equipment_text or 'none'}.",
        "Use query_exercise_library and get_exercise_details to look up specific exercises.",
    ]
    return "\n".join(lines)
