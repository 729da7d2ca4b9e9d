from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from coach.plans.models import CamelModel

MuscleGroup = Literal[
    "chest",
    "back",
    "shoulders",
    "biceps",
    "triceps",
    "core",
    "quadriceps",
    "hamstrings",
    "glutes",
    "calves",
    "forearms",
    "full_body",
]

EquipmentType = Literal[
    "none",
    "dumbbells",
    "barbell",
    "kettlebell",
    "resistance_bands",
    "cable_machine",
    "bench",
    "pull_up_bar",
    "machine",
    "medicine_ball",
    "stability_ball",
]

DifficultyLevel = Literal["beginner", "intermediate", "advanced"]


class NewExercise(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    primary_muscles: List[MuscleGroup] = Field(min_length=1)
    secondary_muscles: List[MuscleGroup] = Field(default_factory=list)
    equipment_required: List[EquipmentType] = Field(default_factory=list)
    difficulty: DifficultyLevel
    instructions: List[str] = Field(default_factory=list)
    tips: List[str] = Field(default_factory=list)
    is_custom: bool = True


class ExerciseUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    primary_muscles: Optional[List[MuscleGroup]] = None
    secondary_muscles: Optional[List[MuscleGroup]] = None
    equipment_required: Optional[List[EquipmentType]] = None
    difficulty: Optional[DifficultyLevel] = None
    instructions: Optional[List[str]] = None
    tips: Optional[List[str]] = None


class LibraryExercise(NewExercise):
    id: str
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExerciseFilters(CamelModel):
    muscle_group: Optional[MuscleGroup] = None
    equipment: Optional[EquipmentType] = None
    difficulty: Optional[DifficultyLevel] = None
    search_term: Optional[str] = None


def matches_filters(exercise: LibraryExercise, filters: ExerciseFilters) -> bool:
    """All provided filters must hold."""
    if filters.muscle_group and not (
        filters.muscle_group in exercise.primary_muscles
        or filters.muscle_group in exercise.secondary_muscles
    ):
        return False
    if filters.equipment and filters.equipment not in exercise.equipment_required:
        return False
    if filters.difficulty and exercise.difficulty != filters.difficulty:
        return False
    if filters.search_term and filters.search_term.strip().lower() not in exercise.name.lower():
        return False
    return True


def filter_exercises(exercises: List[LibraryExercise], filters: ExerciseFilters) -> List[LibraryExercise]:
    return [exercise for exercise in exercises if matches_filters(exercise, filters)]
