import logging

import pytest
from langchain_core.messages import AIMessage, SystemMessage, ToolMessage
from openai import OpenAIError

from coach.errors import ProviderFailure
from coach.graph import graph as graph_module
from coach.graph.graph import ChatMessage, ConversationOrchestrator, message_text
from coach.library.cache import CacheResolution
from coach.library.models import LibraryExercise
from coach.plans import lifecycle
from coach.tools.catalog import SaveWorkoutPlanAction, TOOL_SPECS

from conftest import T0, ScriptedChatModel, make_schedule


@pytest.fixture
def snapshot():
    exercises = [
        LibraryExercise(
            id="default-plank",
            name="Plank",
            primary_muscles=["core"],
            equipment_required=["none"],
            difficulty="intermediate",
            instructions=["Hold a straight line."],
            is_custom=False,
            is_default=True,
        ),
        LibraryExercise(
            id="default-glute-bridges",
            name="Glute Bridges",
            primary_muscles=["glutes"],
            equipment_required=["none"],
            difficulty="beginner",
            instructions=["Lift your hips."],
            is_custom=False,
            is_default=True,
        ),
    ]
    return CacheResolution(exercises=exercises, hash="abc123", from_cache=True)


def _tool_call(name, args, call_id):
    return {"name": name, "args": args, "id": call_id, "type": "tool_call"}


def _orchestrator(responses):
    model = ScriptedChatModel(responses)
    return ConversationOrchestrator(model=model, continuation_model=model), model


def _transcript(text="Hi coach"):
    return [ChatMessage(role="user", content=text)]


def test_plain_reply_uses_one_call(snapshot):
    orchestrator, model = _orchestrator([AIMessage(content="Let's get moving!")])
    result = orchestrator.run_turn(_transcript(), snapshot)

    assert result.message == "Let's get moving!"
    assert result.tool_actions == []
    assert result.exercise_library_hash == "abc123"
    assert result.from_cache
    assert not result.continued
    assert len(model.calls) == 1
    assert model.bound_tools == TOOL_SPECS
    system = model.calls[0][0]
    assert isinstance(system, SystemMessage)
    assert "The user has no active workout plan." in system.content
    assert "Exercise library: 2 exercises (0 custom)." in system.content


def test_prompt_includes_plan_status(snapshot):
    plan = lifecycle.new_plan("user-1", make_schedule(), now=T0, name="Spring Program")
    orchestrator, model = _orchestrator([AIMessage(content="Looks good.")])
    orchestrator.run_turn(_transcript(), snapshot, plan=plan, user_context={"goal": "strength"}, now=T0)
    system = model.calls[0][0].content
    assert 'Current plan: "Spring Program" (status: active' in system
    assert "- goal: strength" in system
    assert '"dayOfWeek": "monday"' in system


def test_tool_calls_without_text_get_one_continuation(snapshot):
    first = AIMessage(
        content="",
        tool_calls=[
            _tool_call("query_exercise_library", {"muscleGroup": "glutes"}, "call_1"),
            _tool_call("save_workout_plan", {"workoutSchedule": make_schedule()}, "call_2"),
        ],
    )
    orchestrator, model = _orchestrator([first, AIMessage(content="Here is your new plan!")])
    result = orchestrator.run_turn(_transcript("Create me a plan"), snapshot)

    assert result.message == "Here is your new plan!"
    assert result.continued
    assert len(model.calls) == 2
    assert [type(action) for action in result.tool_actions] == [SaveWorkoutPlanAction]

    tool_messages = [m for m in model.calls[1] if isinstance(m, ToolMessage)]
    assert [m.tool_call_id for m in tool_messages] == ["call_1", "call_2"]
    assert "Glute Bridges" in tool_messages[0].content
    assert tool_messages[1].content == "save_workout_plan saved successfully"


def test_continuation_is_never_repeated(snapshot, caplog):
    first = AIMessage(content="", tool_calls=[_tool_call("get_exercise_details", {"exerciseName": "plank"}, "c1")])
    second = AIMessage(
        content="",
        tool_calls=[_tool_call("get_exercise_details", {"exerciseName": "bridge"}, "c2")],
    )
    orchestrator, model = _orchestrator([first, second, AIMessage(content="never used")])
    with caplog.at_level(logging.WARNING, logger="coach.graph.graph"):
        result = orchestrator.run_turn(_transcript(), snapshot)

    assert len(model.calls) == 2
    assert len(model.responses) == 1
    assert result.message == "I've updated your workout plan!"
    assert result.tool_actions == []
    assert any("Dropping 1 tool call" in record.getMessage() for record in caplog.records)


def test_text_with_tool_calls_skips_continuation(snapshot):
    response = AIMessage(
        content="I'll add that exercise for you.",
        tool_calls=[
            _tool_call(
                "add_exercise_to_library",
                {
                    "name": "Farmer Carry",
                    "primaryMuscles": ["forearms"],
                    "equipmentRequired": ["dumbbells"],
                    "difficulty": "beginner",
                    "instructions": ["Walk while holding weights."],
                },
                "c1",
            ),
            _tool_call("query_exercise_library", {}, "c2"),
        ],
    )
    orchestrator, model = _orchestrator([response])
    result = orchestrator.run_turn(_transcript(), snapshot)

    assert len(model.calls) == 1
    assert result.message == "I'll add that exercise for you."
    assert [action.tool for action in result.tool_actions] == ["add_exercise_to_library"]


def test_invalid_tool_call_is_answered_with_error_and_dropped(snapshot):
    first = AIMessage(
        content="",
        tool_calls=[_tool_call("update_day_schedule", {"dayOfWeek": "funday"}, "bad")],
    )
    orchestrator, model = _orchestrator([first, AIMessage(content="Sorry, let me fix that.")])
    result = orchestrator.run_turn(_transcript(), snapshot)

    assert result.tool_actions == []
    assert result.message == "Sorry, let me fix that."
    error = [m for m in model.calls[1] if isinstance(m, ToolMessage)][0]
    assert error.content.startswith("Error: Invalid input for update_day_schedule")


def test_provider_errors_become_provider_failure(snapshot):
    orchestrator, _ = _orchestrator([RuntimeError("upstream 500")])
    with pytest.raises(ProviderFailure) as excinfo:
        orchestrator.run_turn(_transcript(), snapshot)
    assert str(excinfo.value) == "Failed to get response from AI"


def test_continuation_failure_aborts_turn(snapshot):
    first = AIMessage(content="", tool_calls=[_tool_call("query_exercise_library", {}, "c1")])
    orchestrator, _ = _orchestrator([first, TimeoutError("slow")])
    with pytest.raises(ProviderFailure):
        orchestrator.run_turn(_transcript(), snapshot)


def test_message_text_handles_content_blocks():
    message = AIMessage(content=[{"type": "text", "text": "Hello "}, {"type": "tool_use", "id": "x"}, "there"])
    assert message_text(message) == "Hello there"


def _unparseable_call(name, call_id):
    return {
        "name": name,
        "args": '{"exerciseName": "plank"',
        "id": call_id,
        "error": "Function arguments are not valid JSON",
        "type": "invalid_tool_call",
    }


def test_every_tool_call_id_is_answered_before_continuing(snapshot):
    first = AIMessage(
        content="",
        tool_calls=[_tool_call("get_exercise_details", {"exerciseName": "plank"}, "call_ok")],
        invalid_tool_calls=[_unparseable_call("get_exercise_details", "call_bad")],
    )
    orchestrator, model = _orchestrator([first, AIMessage(content="Planks work your core.")])
    result = orchestrator.run_turn(_transcript(), snapshot)

    assert result.message == "Planks work your core."
    continuation = model.calls[1]
    assistant = [m for m in continuation if isinstance(m, AIMessage)][-1]
    sent_ids = [call["id"] for call in assistant.tool_calls] + [call["id"] for call in assistant.invalid_tool_calls]
    answers = {m.tool_call_id: m.content for m in continuation if isinstance(m, ToolMessage)}
    assert set(answers) == set(sent_ids) == {"call_ok", "call_bad"}
    assert answers["call_ok"].startswith("Plank")
    assert answers["call_bad"].startswith("Error: Could not parse arguments for get_exercise_details")


def test_only_unparseable_calls_still_get_a_continuation(snapshot):
    first = AIMessage(content="", invalid_tool_calls=[_unparseable_call("save_workout_plan", "call_bad")])
    orchestrator, model = _orchestrator([first, AIMessage(content="Let me try that again.")])
    result = orchestrator.run_turn(_transcript(), snapshot)

    assert len(model.calls) == 2
    assert result.message == "Let me try that again."
    assert result.tool_actions == []


def test_missing_provider_credentials_become_provider_failure(snapshot, monkeypatch):
    def no_credentials(**kwargs):
        raise OpenAIError("Missing credentials")

    monkeypatch.setattr(graph_module, "build_chat_model", no_credentials)
    orchestrator = ConversationOrchestrator()
    with pytest.raises(ProviderFailure) as excinfo:
        orchestrator.run_turn(_transcript(), snapshot)
    assert str(excinfo.value) == "Failed to get response from AI"
