from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any, List, Optional, Sequence

from coach.db import queries
from coach.db.connection import get_db_conn
from coach.errors import NotFound, ValidationFailure
from coach.library.cache import CacheResolution, ExerciseLibraryCache
from coach.library.defaults import DEFAULT_EXERCISES, default_exercise_id
from coach.library.models import (
    ExerciseFilters,
    ExerciseUpdate,
    LibraryExercise,
    NewExercise,
    filter_exercises,
)
from coach.plans.models import utcnow

logger = logging.getLogger(__name__)


def _parse_dt(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _json_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if not value:
        return []
    return json.loads(value)


def _row_to_exercise(row: Sequence[Any]) -> LibraryExercise:
    return LibraryExercise(
        id=row[0],
        name=row[2],
        primary_muscles=_json_list(row[3]),
        secondary_muscles=_json_list(row[4]),
        equipment_required=_json_list(row[5]),
        difficulty=row[6],
        instructions=_json_list(row[7]),
        tips=_json_list(row[8]),
        is_custom=bool(row[9]),
        is_default=bool(row[10]),
        created_at=_parse_dt(row[11]),
        updated_at=_parse_dt(row[12]),
    )


def _insert_params(user_id: str, exercise: LibraryExercise) -> tuple:
    return (
        exercise.id,
        user_id,
        exercise.name,
        json.dumps(list(exercise.primary_muscles)),
        json.dumps(list(exercise.secondary_muscles)),
        json.dumps(list(exercise.equipment_required)),
        exercise.difficulty,
        json.dumps(exercise.instructions),
        json.dumps(exercise.tips),
        int(exercise.is_custom),
        int(exercise.is_default),
        exercise.created_at.isoformat() if exercise.created_at else utcnow().isoformat(),
        exercise.updated_at.isoformat() if exercise.updated_at else None,
    )


class ExerciseLibraryStore:
    """Per-user exercise catalog. Every write drops the user's cache entry before returning."""

    def __init__(self, cache: ExerciseLibraryCache):
        self.cache = cache

    def list(self, user_id: str) -> List[LibraryExercise]:
        with get_db_conn() as conn:
            cur = conn.cursor()
            cur.execute(queries.SELECT_EXERCISES, (user_id,))
            rows = cur.fetchall()
        return [_row_to_exercise(row) for row in rows]

    def get(self, user_id: str, exercise_id: str) -> Optional[LibraryExercise]:
        with get_db_conn() as conn:
            cur = conn.cursor()
            cur.execute(queries.SELECT_EXERCISE, (user_id, exercise_id))
            row = cur.fetchone()
        return _row_to_exercise(row) if row else None

    def get_by_name(self, user_id: str, name: str) -> Optional[LibraryExercise]:
        wanted = (name or "").strip().lower()
        for exercise in self.list(user_id):
            if exercise.name.lower() == wanted:
                return exercise
        return None

    def search(self, user_id: str, filters: ExerciseFilters) -> List[LibraryExercise]:
        return filter_exercises(self.list(user_id), filters)

    def ensure_seeded(self, user_id: str) -> bool:
        """Populate an empty library with the default catalog. Returns True when seeding happened."""
        with get_db_conn() as conn:
            cur = conn.cursor()
            cur.execute(queries.COUNT_EXERCISES, (user_id,))
            count = int((cur.fetchone() or [0])[0] or 0)
            if count:
                return False
            now = utcnow()
            rows = [
                _insert_params(
                    user_id,
                    LibraryExercise(
                        id=default_exercise_id(item["name"]),
                        is_custom=False,
                        is_default=True,
                        created_at=now,
                        **item,
                    ),
                )
                for item in DEFAULT_EXERCISES
            ]
            # Deterministic ids make concurrent first loads converge on one copy.
            cur.executemany(queries.INSERT_DEFAULT_EXERCISE, rows)
            conn.commit()
        self.cache.invalidate(user_id)
        logger.info("Seeded %s default exercises for user %s", len(DEFAULT_EXERCISES), user_id)
        return True

    def create(self, user_id: str, new_exercise: NewExercise) -> LibraryExercise:
        exercise = LibraryExercise(
            id=uuid.uuid4().hex,
            is_default=False,
            created_at=utcnow(),
            **new_exercise.model_dump(by_alias=False),
        )
        with get_db_conn() as conn:
            cur = conn.cursor()
            cur.execute(queries.INSERT_EXERCISE, _insert_params(user_id, exercise))
            conn.commit()
        self.cache.invalidate(user_id)
        return exercise

    def update(self, user_id: str, exercise_id: str, updates: ExerciseUpdate) -> LibraryExercise:
        with get_db_conn() as conn:
            conn.begin_write()
            cur = conn.cursor()
            cur.execute(conn.for_update(queries.SELECT_EXERCISE), (user_id, exercise_id))
            row = cur.fetchone()
            if not row:
                raise NotFound(f"Exercise {exercise_id} not found.")
            current = _row_to_exercise(row)
            changes = updates.model_dump(exclude_none=True, by_alias=False)
            updated = current.model_copy(update={**changes, "updated_at": utcnow()})
            cur.execute(
                queries.UPDATE_EXERCISE,
                (
                    updated.name,
                    json.dumps(list(updated.primary_muscles)),
                    json.dumps(list(updated.secondary_muscles)),
                    json.dumps(list(updated.equipment_required)),
                    updated.difficulty,
                    json.dumps(updated.instructions),
                    json.dumps(updated.tips),
                    int(updated.is_custom),
                    updated.updated_at.isoformat(),
                    user_id,
                    exercise_id,
                ),
            )
            conn.commit()
        self.cache.invalidate(user_id)
        return updated

    def delete(self, user_id: str, exercise_id: str, allow_default: bool = False) -> None:
        with get_db_conn() as conn:
            conn.begin_write()
            cur = conn.cursor()
            cur.execute(conn.for_update(queries.SELECT_EXERCISE), (user_id, exercise_id))
            row = cur.fetchone()
            if not row:
                raise NotFound(f"Exercise {exercise_id} not found.")
            if _row_to_exercise(row).is_default and not allow_default:
                raise ValidationFailure("Default exercises cannot be deleted.")
            cur.execute(queries.DELETE_EXERCISE, (user_id, exercise_id))
            conn.commit()
        self.cache.invalidate(user_id)

    def snapshot(
        self,
        user_id: str,
        supplied: Sequence[LibraryExercise] = (),
        client_hash: Optional[str] = None,
    ) -> CacheResolution:
        """Exercise list for one conversational turn: cached, client-supplied, or loaded from the store."""
        if supplied:
            return self.cache.resolve(user_id, supplied, client_hash)
        cached = self.cache.match(user_id, client_hash)
        if cached is not None:
            return cached
        self.ensure_seeded(user_id)
        exercises = self.list(user_id)
        return CacheResolution(exercises=exercises, hash=self.cache.put(user_id, exercises), from_cache=False)
