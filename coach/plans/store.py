from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence

from coach.db import queries
from coach.db.connection import get_db_conn
from coach.errors import NotFound
from coach.plans import lifecycle
from coach.plans.models import DayUpdate, PlanExerciseUpdate, WorkoutPlan, utcnow

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _row_to_plan(row: Sequence[Any]) -> WorkoutPlan:
    schedule = row[6]
    if isinstance(schedule, str):
        schedule = json.loads(schedule)
    return WorkoutPlan(
        id=row[0],
        user_id=row[1],
        name=row[2],
        generated_at=_parse_dt(row[3]),
        generated_by=row[4],
        status=row[5],
        workout_schedule=schedule,
        valid_until=_parse_dt(row[7]),
        started_at=_parse_dt(row[8]),
        paused_at=_parse_dt(row[9]),
        resumed_at=_parse_dt(row[10]),
        archived_at=_parse_dt(row[11]),
        extended_at=_parse_dt(row[12]),
        original_valid_until=_parse_dt(row[13]),
    )


def _schedule_json(plan: WorkoutPlan) -> str:
    return json.dumps([day.model_dump(mode="json", by_alias=True) for day in plan.workout_schedule])


def _insert_params(plan: WorkoutPlan) -> tuple:
    return (
        plan.id,
        plan.user_id,
        plan.name,
        _iso(plan.generated_at),
        plan.generated_by,
        plan.status,
        _schedule_json(plan),
        _iso(plan.valid_until),
        _iso(plan.started_at),
        _iso(plan.paused_at),
        _iso(plan.resumed_at),
        _iso(plan.archived_at),
        _iso(plan.extended_at),
        _iso(plan.original_valid_until),
    )


def _update_params(plan: WorkoutPlan) -> tuple:
    return (
        plan.name,
        plan.status,
        _schedule_json(plan),
        _iso(plan.valid_until),
        _iso(plan.started_at),
        _iso(plan.paused_at),
        _iso(plan.resumed_at),
        _iso(plan.archived_at),
        _iso(plan.extended_at),
        _iso(plan.original_valid_until),
        plan.user_id,
        plan.id,
    )


class PlanStore:
    """User-scoped persistence for workout plans.

    At most one plan per user is ``active``. Creating or resuming a plan pauses
    every other active plan of that user inside the same transaction; the
    partial unique index on ``(user_id) WHERE status = 'active'`` rejects the
    loser of any race, which surfaces as ``ConcurrencyConflict``.
    """

    def get(self, user_id: str, plan_id: str) -> Optional[WorkoutPlan]:
        with get_db_conn() as conn:
            cur = conn.cursor()
            cur.execute(queries.SELECT_PLAN, (user_id, plan_id))
            row = cur.fetchone()
        return _row_to_plan(row) if row else None

    def require(self, user_id: str, plan_id: str) -> WorkoutPlan:
        plan = self.get(user_id, plan_id)
        if plan is None:
            raise NotFound(f"Plan {plan_id} not found.")
        return plan

    def get_active(self, user_id: str) -> Optional[WorkoutPlan]:
        with get_db_conn() as conn:
            cur = conn.cursor()
            cur.execute(queries.SELECT_ACTIVE_PLAN, (user_id,))
            row = cur.fetchone()
        return _row_to_plan(row) if row else None

    def list_for_user(self, user_id: str) -> List[WorkoutPlan]:
        with get_db_conn() as conn:
            cur = conn.cursor()
            cur.execute(queries.SELECT_USER_PLANS, (user_id,))
            rows = cur.fetchall()
        return [_row_to_plan(row) for row in rows]

    def _pause_other_active(self, conn, cur, user_id: str, keep_id: str, now: datetime) -> None:
        cur.execute(conn.for_update(queries.SELECT_ACTIVE_PLAN_IDS), (user_id,))
        paused = [row[0] for row in cur.fetchall() if row[0] != keep_id]
        cur.execute(queries.PAUSE_OTHER_ACTIVE_PLANS, (_iso(now), user_id, keep_id))
        if paused:
            logger.info("Paused plans %s for user %s", paused, user_id)

    def create_plan(
        self,
        user_id: str,
        schedule: Iterable[Any],
        valid_until: Optional[datetime] = None,
        name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or utcnow()
        plan = lifecycle.new_plan(user_id, schedule, now=now, valid_until=valid_until, name=name)
        with get_db_conn() as conn:
            conn.begin_write()
            cur = conn.cursor()
            self._pause_other_active(conn, cur, user_id, plan.id, now)
            cur.execute(queries.INSERT_PLAN, _insert_params(plan))
            conn.commit()
        logger.info("Created plan %s for user %s", plan.id, user_id)
        return plan.id

    def _mutate(
        self,
        user_id: str,
        plan_id: str,
        change: Callable[[WorkoutPlan], WorkoutPlan],
        activating: bool = False,
        now: Optional[datetime] = None,
    ) -> WorkoutPlan:
        with get_db_conn() as conn:
            conn.begin_write()
            cur = conn.cursor()
            cur.execute(conn.for_update(queries.SELECT_PLAN), (user_id, plan_id))
            row = cur.fetchone()
            if not row:
                raise NotFound(f"Plan {plan_id} not found.")
            plan = _row_to_plan(row)
            updated = change(plan)
            if updated is not plan:
                if activating:
                    self._pause_other_active(conn, cur, user_id, plan_id, now or utcnow())
                cur.execute(queries.UPDATE_PLAN, _update_params(updated))
            conn.commit()
        return updated

    def pause(self, user_id: str, plan_id: str, now: Optional[datetime] = None) -> WorkoutPlan:
        return self._mutate(user_id, plan_id, lambda plan: lifecycle.pause(plan, now))

    def resume(self, user_id: str, plan_id: str, now: Optional[datetime] = None) -> WorkoutPlan:
        now = now or utcnow()
        return self._mutate(
            user_id,
            plan_id,
            lambda plan: lifecycle.resume(plan, now),
            activating=True,
            now=now,
        )

    def archive(self, user_id: str, plan_id: str, now: Optional[datetime] = None) -> WorkoutPlan:
        return self._mutate(user_id, plan_id, lambda plan: lifecycle.archive(plan, now))

    def extend(self, user_id: str, plan_id: str, weeks: int, now: Optional[datetime] = None) -> WorkoutPlan:
        return self._mutate(user_id, plan_id, lambda plan: lifecycle.extend(plan, weeks, now))

    def rename(self, user_id: str, plan_id: str, name: str) -> WorkoutPlan:
        return self._mutate(user_id, plan_id, lambda plan: lifecycle.rename(plan, name))

    def update_day(self, user_id: str, plan_id: str, day_key: str, updates: DayUpdate) -> WorkoutPlan:
        return self._mutate(user_id, plan_id, lambda plan: lifecycle.update_day(plan, day_key, updates))

    def update_exercise(
        self,
        user_id: str,
        plan_id: str,
        day_key: str,
        exercise_id: str,
        updates: PlanExerciseUpdate,
    ) -> bool:
        applied = []

        def change(plan: WorkoutPlan) -> WorkoutPlan:
            updated, ok = lifecycle.update_exercise(plan, day_key, exercise_id, updates)
            applied.append(ok)
            return updated

        self._mutate(user_id, plan_id, change)
        return bool(applied and applied[0])

    def delete(self, user_id: str, plan_id: str) -> None:
        with get_db_conn() as conn:
            cur = conn.cursor()
            cur.execute(queries.DELETE_PLAN, (user_id, plan_id))
            if cur.rowcount == 0:
                raise NotFound(f"Plan {plan_id} not found.")
            conn.commit()
        logger.info("Deleted plan %s for user %s", plan_id, user_id)
