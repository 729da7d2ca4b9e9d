from __future__ import annotations

PLAN_COLUMNS = """
id, user_id, name, generated_at, generated_by, status, workout_schedule, valid_until,
started_at, paused_at, resumed_at, archived_at, extended_at, original_valid_until
"""

SELECT_PLAN = f"""
SELECT {PLAN_COLUMNS}
FROM workout_plans
WHERE user_id = ? AND id = ?
"""

SELECT_ACTIVE_PLAN = f"""
SELECT {PLAN_COLUMNS}
FROM workout_plans
WHERE user_id = ? AND status = 'active'
ORDER BY generated_at DESC
LIMIT 1
"""

SELECT_USER_PLANS = f"""
SELECT {PLAN_COLUMNS}
FROM workout_plans
WHERE user_id = ?
ORDER BY generated_at DESC
"""

SELECT_ACTIVE_PLAN_IDS = """
SELECT id FROM workout_plans WHERE user_id = ? AND status = 'active'
"""

PAUSE_OTHER_ACTIVE_PLANS = """
UPDATE workout_plans
SET status = 'paused', paused_at = ?
WHERE user_id = ? AND status = 'active' AND id <> ?
"""

INSERT_PLAN = f"""
INSERT INTO workout_plans ({PLAN_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

UPDATE_PLAN = """
UPDATE workout_plans
SET name = ?, status = ?, workout_schedule = ?, valid_until = ?, started_at = ?, paused_at = ?,
    resumed_at = ?, archived_at = ?, extended_at = ?, original_valid_until = ?
WHERE user_id = ? AND id = ?
"""

DELETE_PLAN = """
DELETE FROM workout_plans WHERE user_id = ? AND id = ?
"""

EXERCISE_COLUMNS = """
id, user_id, name, primary_muscles, secondary_muscles, equipment_required, difficulty,
instructions, tips, is_custom, is_default, created_at, updated_at
"""

SELECT_EXERCISES = f"""
SELECT {EXERCISE_COLUMNS}
FROM exercise_library
WHERE user_id = ?
ORDER BY name
"""

SELECT_EXERCISE = f"""
SELECT {EXERCISE_COLUMNS}
FROM exercise_library
WHERE user_id = ? AND id = ?
"""

COUNT_EXERCISES = """
SELECT COUNT(*) FROM exercise_library WHERE user_id = ?
"""

INSERT_EXERCISE = f"""
INSERT INTO exercise_library ({EXERCISE_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

INSERT_DEFAULT_EXERCISE = f"""
INSERT INTO exercise_library ({EXERCISE_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (user_id, id) DO NOTHING
"""

UPDATE_EXERCISE = """
UPDATE exercise_library
SET name = ?, primary_muscles = ?, secondary_muscles = ?, equipment_required = ?, difficulty = ?,
    instructions = ?, tips = ?, is_custom = ?, updated_at = ?
WHERE user_id = ? AND id = ?
"""

DELETE_EXERCISE = """
DELETE FROM exercise_library WHERE user_id = ? AND id = ?
"""
