from datetime import datetime, timezone

import pytest

from coach.db.schema import init_schema
from coach.plans import lifecycle

DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)  # a Monday


def make_day(day, workout_type="full_body", exercises=None, name=None):
    if workout_type == "rest":
        exercises = []
    elif exercises is None:
        exercises = [
            {"id": "ex-1", "name": "Chair Squats", "sets": 3, "reps": 10},
            {"id": "ex-2", "name": "Wall Push-ups", "sets": 3, "reps": 12},
            {"id": "ex-3", "name": "Plank", "sets": 2, "reps": 1, "notes": "hold 30s"},
        ]
    return {
        "dayOfWeek": day,
        "workoutType": workout_type,
        "workoutName": name or ("Rest" if workout_type == "rest" else f"{day.title()} Session"),
        "exercises": exercises,
    }


def make_schedule(rest_days=("wednesday", "sunday")):
    return [make_day(day, "rest" if day in rest_days else "full_body") for day in DAYS]


class ScriptedChatModel:
    """Stands in for the chat model: replays queued responses and records every call."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.bound_tools = None

    def bind_tools(self, tools, **kwargs):
        self.bound_tools = tools
        return self

    def invoke(self, messages, *args, **kwargs):
        self.calls.append(list(messages))
        if not self.responses:
            raise AssertionError("Unexpected model call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'coach.db'}")
    init_schema()
    return tmp_path / "coach.db"


@pytest.fixture
def schedule():
    return make_schedule()


@pytest.fixture
def plan(schedule):
    return lifecycle.new_plan("user-1", schedule, now=T0)
