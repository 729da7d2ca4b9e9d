import json

import pytest

from coach.errors import ValidationFailure
from coach.tools.catalog import (
    READ_TOOLS,
    TOOL_SPECS,
    WRITE_TOOLS,
    AddExerciseToLibraryAction,
    SaveWorkoutPlanAction,
    UpdateExerciseAction,
    action_payload,
    is_read_action,
    parse_tool_action,
    parse_tool_call,
    write_placeholder,
)

from conftest import make_schedule


def test_catalog_is_fixed():
    names = {spec["function"]["name"] for spec in TOOL_SPECS}
    assert names == READ_TOOLS | WRITE_TOOLS
    assert READ_TOOLS == {"query_exercise_library", "get_exercise_details"}
    assert WRITE_TOOLS == {
        "save_workout_plan",
        "update_day_schedule",
        "update_exercise",
        "add_exercise_to_library",
    }


def test_specs_carry_enums_and_camel_case_names():
    specs = {spec["function"]["name"]: spec["function"] for spec in TOOL_SPECS}
    query = specs["query_exercise_library"]
    assert set(query["parameters"]["properties"]) == {"muscleGroup", "equipment", "difficulty", "searchTerm"}
    assert query["description"].startswith("Search the user's exercise library")
    dumped = json.dumps(specs["save_workout_plan"])
    for value in ("monday", "sunday", "upper_body", "rest"):
        assert f'"{value}"' in dumped
    assert "workoutSchedule" in specs["save_workout_plan"]["parameters"]["required"]
    assert '"pull_up_bar"' in json.dumps(specs["add_exercise_to_library"])


def test_parse_save_workout_plan():
    action = parse_tool_call("save_workout_plan", {"workoutSchedule": make_schedule()})
    assert isinstance(action, SaveWorkoutPlanAction)
    assert not is_read_action(action)
    assert action.input.workout_schedule[0].day_of_week == "monday"


def test_save_workout_plan_needs_seven_days():
    with pytest.raises(ValidationFailure) as excinfo:
        parse_tool_call("save_workout_plan", {"workoutSchedule": make_schedule()[:5]})
    assert "workoutSchedule" in str(excinfo.value)


def test_enums_are_revalidated():
    with pytest.raises(ValidationFailure):
        parse_tool_call("query_exercise_library", {"muscleGroup": "neck"})
    with pytest.raises(ValidationFailure):
        parse_tool_call(
            "update_day_schedule",
            {"dayOfWeek": "funday", "workoutType": "rest", "workoutName": "Rest", "exercises": []},
        )
    with pytest.raises(ValidationFailure):
        parse_tool_call(
            "add_exercise_to_library",
            {
                "name": "Rope Climb",
                "primaryMuscles": ["back"],
                "equipmentRequired": ["rope"],
                "difficulty": "advanced",
                "instructions": ["Climb."],
            },
        )


def test_unknown_tool_is_rejected():
    with pytest.raises(ValidationFailure) as excinfo:
        parse_tool_call("delete_everything", {})
    assert "Unknown tool" in str(excinfo.value)
    with pytest.raises(ValidationFailure):
        parse_tool_action(["not", "a", "dict"])


def test_update_exercise_payload_keeps_only_supplied_fields():
    action = parse_tool_call(
        "update_exercise",
        {"dayOfWeek": "monday", "exerciseId": "ex-3", "updates": {"sets": 4}},
    )
    assert isinstance(action, UpdateExerciseAction)
    assert action_payload(action) == {
        "tool": "update_exercise",
        "input": {"dayOfWeek": "monday", "exerciseId": "ex-3", "updates": {"sets": 4}},
    }


def test_add_exercise_accepts_camel_case():
    action = parse_tool_action(
        {
            "tool": "add_exercise_to_library",
            "input": {
                "name": "Farmer Carry",
                "primaryMuscles": ["forearms"],
                "secondaryMuscles": ["core"],
                "equipmentRequired": ["dumbbells"],
                "difficulty": "beginner",
                "instructions": ["Pick up heavy dumbbells.", "Walk."],
            },
        }
    )
    assert isinstance(action, AddExerciseToLibraryAction)
    assert action.input.primary_muscles == ["forearms"]


def test_write_placeholder():
    assert write_placeholder("save_workout_plan") == "save_workout_plan saved successfully"


def test_save_workout_plan_rejects_repeated_weekday():
    schedule = make_schedule()
    schedule[6] = dict(schedule[0])
    with pytest.raises(ValidationFailure) as excinfo:
        parse_tool_call("save_workout_plan", {"workoutSchedule": schedule})
    message = str(excinfo.value)
    assert message.startswith("Invalid input for save_workout_plan: workoutSchedule")
    assert "one entry for each of the 7 days" in message
