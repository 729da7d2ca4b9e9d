from __future__ import annotations

import argparse
import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field, ValidationError, model_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from coach.config.constants import MAX_MESSAGES, MAX_TOTAL_CONTENT_SIZE, configure_logging
from coach.db.retry import with_retry
from coach.errors import CoachError, ValidationFailure
from coach.graph.graph import ChatMessage, ConversationOrchestrator
from coach.library.cache import build_exercise_library_cache
from coach.library.models import ExerciseFilters, ExerciseUpdate, LibraryExercise, NewExercise
from coach.library.store import ExerciseLibraryStore
from coach.plans.models import (
    CamelModel,
    DaySchedule,
    DayUpdate,
    PlanExerciseUpdate,
    WorkoutPlan,
    effective_status,
    todays_workout,
)
from coach.plans.store import PlanStore
from coach.tools.catalog import action_payload, parse_tool_action
from coach.tools.executor import ActionOutcome, ClientToolExecutor, ExecutionReport

logger = logging.getLogger(__name__)

app = FastAPI(title="Coach API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_PLAN_STORE = PlanStore()
_LIBRARY_STORE = ExerciseLibraryStore(build_exercise_library_cache())


def get_plan_store() -> PlanStore:
    return _PLAN_STORE


def get_library_store() -> ExerciseLibraryStore:
    return _LIBRARY_STORE


@lru_cache(maxsize=1)
def get_orchestrator() -> ConversationOrchestrator:
    return ConversationOrchestrator()


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """The auth layer in front of this service puts the verified user id in ``X-User-Id``."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required.")
    return x_user_id.strip()


@app.exception_handler(CoachError)
async def _coach_error_handler(request, exc: CoachError) -> JSONResponse:
    payload: Dict[str, Any] = {"error": str(exc)}
    if exc.retryable:
        payload["retryable"] = True
    return JSONResponse(status_code=exc.status_code, content=payload)


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request.")
    return JSONResponse(
        status_code=422,
        content={"error": f"{location}: {message}" if location else message},
    )


class ChatRequest(CamelModel):
    messages: List[ChatMessage] = Field(min_length=1, max_length=MAX_MESSAGES)
    user_context: Optional[Dict[str, Any]] = None
    exercise_library: Optional[List[LibraryExercise]] = None
    exercise_library_hash: Optional[str] = None

    @model_validator(mode="after")
    def _check_total_size(self):
        total = sum(len(message.content) for message in self.messages)
        if total > MAX_TOTAL_CONTENT_SIZE:
            raise ValueError(f"Total message content exceeds {MAX_TOTAL_CONTENT_SIZE} characters.")
        return self


class CreatePlanRequest(CamelModel):
    workout_schedule: List[DaySchedule]
    name: Optional[str] = None
    valid_until: Optional[datetime] = None


class ExtendPlanRequest(CamelModel):
    weeks: int


class RenamePlanRequest(CamelModel):
    name: str


class ToolActionsRequest(CamelModel):
    actions: List[Dict[str, Any]]
    confirm_replace: bool = False


def _plan_payload(plan: Optional[WorkoutPlan]) -> Optional[Dict[str, Any]]:
    if plan is None:
        return None
    payload = plan.model_dump(mode="json", by_alias=True)
    payload["active"] = plan.active
    payload["effectiveStatus"] = effective_status(plan)
    return payload


def _exercise_payload(exercise: LibraryExercise) -> Dict[str, Any]:
    return exercise.model_dump(mode="json", by_alias=True)


@app.get("/api/health")
def health(library: ExerciseLibraryStore = Depends(get_library_store)) -> Dict[str, Any]:
    return {"status": "ok", "cache": library.cache.stats()}


@app.post("/api/chat")
def chat(
    body: ChatRequest,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
    library: ExerciseLibraryStore = Depends(get_library_store),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    snapshot = library.snapshot(user_id, body.exercise_library or [], body.exercise_library_hash)
    result = orchestrator.run_turn(
        body.messages,
        snapshot,
        plan=plans.get_active(user_id),
        user_context=body.user_context,
    )
    return {
        "message": result.message,
        "toolActions": [action_payload(action) for action in result.tool_actions],
        "exerciseLibraryHash": result.exercise_library_hash,
        "fromCache": result.from_cache,
    }


@app.get("/api/plans")
def list_plans(
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    return {"plans": [_plan_payload(plan) for plan in plans.list_for_user(user_id)]}


@app.get("/api/plans/active")
def active_plan(
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    return {"plan": _plan_payload(plans.get_active(user_id))}


@app.get("/api/plans/today")
def today(
    session_length: Optional[int] = Query(default=None, alias="sessionLength", ge=1),
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    plan = plans.get_active(user_id)
    workout = todays_workout(plan, session_length=session_length) if plan else None
    return {"workout": workout.model_dump(mode="json", by_alias=True) if workout else None}


@app.post("/api/plans", status_code=201)
def create_plan(
    body: CreatePlanRequest,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    plan_id = with_retry(
        lambda: plans.create_plan(user_id, body.workout_schedule, valid_until=body.valid_until, name=body.name)
    )
    return {"id": plan_id, "plan": _plan_payload(plans.require(user_id, plan_id))}


@app.get("/api/plans/{plan_id}")
def get_plan(
    plan_id: str,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    return {"plan": _plan_payload(plans.require(user_id, plan_id))}


@app.post("/api/plans/{plan_id}/pause")
def pause_plan(
    plan_id: str,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    return {"plan": _plan_payload(plans.pause(user_id, plan_id))}


@app.post("/api/plans/{plan_id}/resume")
def resume_plan(
    plan_id: str,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    return {"plan": _plan_payload(with_retry(lambda: plans.resume(user_id, plan_id)))}


@app.post("/api/plans/{plan_id}/archive")
def archive_plan(
    plan_id: str,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    return {"plan": _plan_payload(plans.archive(user_id, plan_id))}


@app.post("/api/plans/{plan_id}/extend")
def extend_plan(
    plan_id: str,
    body: ExtendPlanRequest,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    return {"plan": _plan_payload(plans.extend(user_id, plan_id, body.weeks))}


@app.post("/api/plans/{plan_id}/rename")
def rename_plan(
    plan_id: str,
    body: RenamePlanRequest,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    return {"plan": _plan_payload(plans.rename(user_id, plan_id, body.name))}


@app.delete("/api/plans/{plan_id}")
def delete_plan(
    plan_id: str,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    plans.delete(user_id, plan_id)
    return {"success": True}


@app.patch("/api/plans/{plan_id}/days/{day}")
def update_day(
    plan_id: str,
    day: str,
    body: DayUpdate,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    return {"plan": _plan_payload(plans.update_day(user_id, plan_id, day, body))}


@app.patch("/api/plans/{plan_id}/days/{day}/exercises/{exercise_id}")
def update_plan_exercise(
    plan_id: str,
    day: str,
    exercise_id: str,
    body: PlanExerciseUpdate,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
) -> Dict[str, Any]:
    updated = plans.update_exercise(user_id, plan_id, day, exercise_id, body)
    return {"updated": updated, "plan": _plan_payload(plans.require(user_id, plan_id))}


@app.get("/api/exercises")
def list_exercises(
    muscle_group: Optional[str] = Query(default=None, alias="muscleGroup"),
    equipment: Optional[str] = Query(default=None),
    difficulty: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    user_id: str = Depends(current_user_id),
    library: ExerciseLibraryStore = Depends(get_library_store),
) -> Dict[str, Any]:
    try:
        filters = ExerciseFilters(
            muscle_group=muscle_group,
            equipment=equipment,
            difficulty=difficulty,
            search_term=search,
        )
    except ValidationError as exc:
        raise ValidationFailure(f"Invalid filter: {exc.errors()[0]['msg']}") from exc
    library.ensure_seeded(user_id)
    exercises = library.search(user_id, filters)
    return {"exercises": [_exercise_payload(exercise) for exercise in exercises]}


@app.post("/api/exercises", status_code=201)
def create_exercise(
    body: NewExercise,
    user_id: str = Depends(current_user_id),
    library: ExerciseLibraryStore = Depends(get_library_store),
) -> Dict[str, Any]:
    return {"exercise": _exercise_payload(library.create(user_id, body))}


@app.patch("/api/exercises/{exercise_id}")
def update_exercise(
    exercise_id: str,
    body: ExerciseUpdate,
    user_id: str = Depends(current_user_id),
    library: ExerciseLibraryStore = Depends(get_library_store),
) -> Dict[str, Any]:
    return {"exercise": _exercise_payload(library.update(user_id, exercise_id, body))}


@app.delete("/api/exercises/{exercise_id}")
def delete_exercise(
    exercise_id: str,
    allow_default: bool = Query(default=False, alias="allowDefault"),
    user_id: str = Depends(current_user_id),
    library: ExerciseLibraryStore = Depends(get_library_store),
) -> Dict[str, Any]:
    library.delete(user_id, exercise_id, allow_default=allow_default)
    return {"success": True}


@app.post("/api/tool-actions")
def apply_tool_actions(
    body: ToolActionsRequest,
    user_id: str = Depends(current_user_id),
    plans: PlanStore = Depends(get_plan_store),
    library: ExerciseLibraryStore = Depends(get_library_store),
) -> Dict[str, Any]:
    """Apply write-tool actions the user already confirmed in the client."""
    executor = ClientToolExecutor(plans, library, confirm_replace=lambda action, plan: body.confirm_replace)
    report = ExecutionReport()
    for raw in body.actions:
        try:
            action = parse_tool_action(raw)
        except ValidationFailure as exc:
            logger.warning("Rejected tool action for user %s: %s", user_id, exc)
            report.outcomes.append(ActionOutcome(str(raw.get("tool")), "failed", str(exc)))
            continue
        executor.apply(user_id, [action], report=report)
    return report.to_dict()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the coach API server.")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind.")
    parser.add_argument("--port", default=8000, type=int, help="Port to bind.")
    parser.add_argument("--log-level", default=None, help="Logging level (defaults to LOG_LEVEL).")
    args = parser.parse_args()

    configure_logging(args.log_level)
    logger.info("Serving coach API at http://%s:%s", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
