from __future__ import annotations

import argparse
from typing import List

from coach.config.constants import configure_logging
from coach.errors import CoachError
from coach.graph.graph import ChatMessage, ConversationOrchestrator
from coach.library.cache import build_exercise_library_cache
from coach.library.store import ExerciseLibraryStore
from coach.plans.models import WorkoutPlan, effective_status
from coach.plans.store import PlanStore
from coach.tools.catalog import SaveWorkoutPlanAction
from coach.tools.executor import ClientToolExecutor, describe_action


def _confirm_replace(action: SaveWorkoutPlanAction, active_plan: WorkoutPlan) -> bool:
    print(f'\nYou already have an active plan: "{active_plan.name}".')
    print(describe_action(action))
    answer = input("Replace it with this new plan? Your current plan will be paused. (yes/no): ")
    return answer.strip().lower().startswith("y")


def run_cli(user_id: str) -> None:
    plan_store = PlanStore()
    library_store = ExerciseLibraryStore(build_exercise_library_cache())
    orchestrator = ConversationOrchestrator()
    executor = ClientToolExecutor(plan_store, library_store, confirm_replace=_confirm_replace)

    library_store.ensure_seeded(user_id)
    active = plan_store.get_active(user_id)
    print("Workout coach. Type 'exit' to quit.\n")
    if active:
        print(f'Active plan: "{active.name}" ({effective_status(active)})\n')

    transcript: List[ChatMessage] = []
    library_hash = None
    while True:
        user_input = input("You: ").strip()
        if user_input.lower() in {"exit", "quit"}:
            break
        if not user_input:
            continue

        transcript.append(ChatMessage(role="user", content=user_input))
        try:
            snapshot = library_store.snapshot(user_id, client_hash=library_hash)
            result = orchestrator.run_turn(transcript, snapshot, plan=plan_store.get_active(user_id))
        except CoachError as exc:
            transcript.pop()
            print(f"\nError: {exc}\n")
            continue
        library_hash = result.exercise_library_hash
        transcript.append(ChatMessage(role="assistant", content=result.message))
        print("\nAssistant:", result.message, "\n")

        if not result.tool_actions:
            continue
        report = executor.apply(user_id, result.tool_actions)
        for outcome in report.outcomes:
            print(f"  [{outcome.status}] {outcome.tool} {outcome.detail}".rstrip())
        if report.library_modified:
            library_hash = None
        if report.plan_updated:
            plan = plan_store.get_active(user_id)
            if plan:
                print(f'\nYour plan "{plan.name}" has been updated.')
        print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat with the workout coach from the terminal.")
    parser.add_argument("--user-id", default="local-user", help="User id to act as.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level.")
    args = parser.parse_args()
    configure_logging(args.log_level)
    run_cli(args.user_id)


if __name__ == "__main__":
    main()
