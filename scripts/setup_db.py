#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Optional

from coach.config.constants import SQLITE_PREFIX, configure_logging
from coach.db.connection import get_db_conn
from coach.db.schema import init_schema
from coach.library.cache import InMemoryExerciseLibraryCache
from coach.library.store import ExerciseLibraryStore

TABLES = ("workout_plans", "exercise_library")


def ensure_db_path(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def reset_db(db_path: Path) -> None:
    if db_path.exists():
        db_path.unlink()


def seed_user(user_id: str) -> None:
    store = ExerciseLibraryStore(InMemoryExerciseLibraryCache())
    if store.ensure_seeded(user_id):
        print(f"Seeded default exercise library for {user_id}")
    else:
        print(f"Exercise library for {user_id} already populated")


def print_counts() -> None:
    with get_db_conn() as conn:
        cur = conn.cursor()
        for table in TABLES:
            cur.execute(f"SELECT COUNT(*) FROM {table}")
            print(f"{table}: {cur.fetchone()[0]}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the coach database schema.")
    parser.add_argument(
        "--sqlite-path",
        default=None,
        help="Use a sqlite database file instead of DATABASE_URL / SUPABASE_DB_* settings.",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete the existing sqlite file before creating a new one.",
    )
    parser.add_argument("--seed-user", default=None, help="Seed the default exercise library for this user.")
    args = parser.parse_args()
    configure_logging()

    db_path: Optional[Path] = None
    if args.sqlite_path:
        db_path = Path(args.sqlite_path).expanduser().resolve()
        ensure_db_path(db_path)
        if args.reset:
            reset_db(db_path)
        os.environ["DATABASE_URL"] = f"{SQLITE_PREFIX}{db_path}"

    init_schema()
    if args.seed_user:
        seed_user(args.seed_user)
    print_counts()
    print(f"Schema ready at {db_path or 'configured database'}")


if __name__ == "__main__":
    main()
