from __future__ import annotations

from coach.db.connection import get_db_conn

# Portable across Postgres and SQLite: TEXT timestamps/JSON, INTEGER flags.
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS workout_plans (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        generated_at TEXT NOT NULL,
        generated_by TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('active', 'paused', 'archived')),
        workout_schedule TEXT NOT NULL,
        valid_until TEXT NOT NULL,
        started_at TEXT,
        paused_at TEXT,
        resumed_at TEXT,
        archived_at TEXT,
        extended_at TEXT,
        original_valid_until TEXT
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS workout_plans_one_active_per_user
    ON workout_plans (user_id) WHERE status = 'active'
    """,
    """
    CREATE INDEX IF NOT EXISTS workout_plans_user_idx
    ON workout_plans (user_id, generated_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS exercise_library (
        id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        primary_muscles TEXT NOT NULL,
        secondary_muscles TEXT NOT NULL,
        equipment_required TEXT NOT NULL,
        difficulty TEXT NOT NULL,
        instructions TEXT NOT NULL,
        tips TEXT NOT NULL,
        is_custom INTEGER NOT NULL DEFAULT 0,
        is_default INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT,
        PRIMARY KEY (user_id, id)
    )
    """,
)


def init_schema() -> None:
    with get_db_conn() as conn:
        cur = conn.cursor()
        for statement in SCHEMA_STATEMENTS:
            cur.execute(statement)
        conn.commit()
