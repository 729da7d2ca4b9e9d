"""
One conversational turn with the coach model, as a small state machine.

    START -> awaiting_model -+-> done -> END
                             |
                             +-> executing_read_tools -> awaiting_continuation -> done

``awaiting_model`` only routes to tool execution when the model asked for
tools without saying anything. ``awaiting_continuation`` has a single edge to
``done``, so a turn makes at most two model calls no matter what the second
response contains.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_openai import ChatOpenAI
from langgraph.graph import END, START, StateGraph, add_messages
from openai import APITimeoutError
from pydantic import BaseModel, Field
from typing_extensions import TypedDict

from coach.config.constants import (
    CHAT_MAX_TOKENS,
    CHAT_TIMEOUT_SECONDS,
    COACH_MODEL,
    CONTINUATION_MAX_TOKENS,
    CONTINUATION_TIMEOUT_SECONDS,
    FALLBACK_ASSISTANT_MESSAGE,
    MAX_MESSAGE_LENGTH,
    MODEL_MAX_RETRIES,
    PROVIDER_ERROR_MESSAGE,
)
from coach.errors import ProviderFailure, ValidationFailure
from coach.library.cache import CacheResolution
from coach.library.models import LibraryExercise
from coach.plans.models import WorkoutPlan
from coach.prompts.system_prompt import build_system_prompt
from coach.tools.catalog import TOOL_SPECS, is_read_action, parse_tool_call, write_placeholder
from coach.tools.library_tools import run_read_tool, summarize_library

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)


class ConversationState(TypedDict):
    messages: Annotated[List[BaseMessage], add_messages]
    library: List[LibraryExercise]
    reply: str
    tool_actions: List[Any]
    rejected_calls: Dict[str, str]
    continued: bool


@dataclass
class TurnResult:
    message: str
    tool_actions: List[Any] = field(default_factory=list)
    exercise_library_hash: Optional[str] = None
    from_cache: bool = False
    continued: bool = False


def build_chat_model(timeout: float = CHAT_TIMEOUT_SECONDS, max_tokens: int = CHAT_MAX_TOKENS) -> ChatOpenAI:
    return ChatOpenAI(
        model=COACH_MODEL,
        temperature=0.7,
        max_tokens=max_tokens,
        max_retries=MODEL_MAX_RETRIES,
        request_timeout=timeout,
    )


def message_text(message: BaseMessage) -> str:
    """Plain text of a model message, whether content is a string or a list of blocks."""
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text") or "")
    return "".join(parts).strip()


def to_langchain_messages(transcript: Sequence[ChatMessage]) -> List[BaseMessage]:
    converted: List[BaseMessage] = []
    for item in transcript:
        if item.role == "user":
            converted.append(HumanMessage(content=item.content))
        else:
            converted.append(AIMessage(content=item.content))
    return converted


def _last_ai_message(state: ConversationState) -> Optional[AIMessage]:
    for message in reversed(state.get("messages", [])):
        if isinstance(message, AIMessage):
            return message
    return None


class ConversationOrchestrator:
    """Runs a single user turn. Read tools are answered here; write tools are returned to the caller."""

    def __init__(self, model: Any = None, continuation_model: Any = None):
        self._model = model
        self._continuation_model = continuation_model
        self._graph = None

    def _bind_models(self) -> None:
        try:
            model = self._model or build_chat_model()
            continuation_model = self._continuation_model or build_chat_model(
                timeout=CONTINUATION_TIMEOUT_SECONDS,
                max_tokens=CONTINUATION_MAX_TOKENS,
            )
        except Exception as exc:
            logger.exception("Could not configure the chat model")
            raise ProviderFailure(PROVIDER_ERROR_MESSAGE) from exc
        self.llm_with_tools = model.bind_tools(TOOL_SPECS)
        self.continuation_llm = continuation_model.bind_tools(TOOL_SPECS)

    @property
    def graph(self):
        """Compiled on first use, so a missing provider credential surfaces as ``ProviderFailure``."""
        if self._graph is None:
            self._bind_models()
            self._graph = self.build_graph()
        return self._graph

    def _call_model(self, llm: Any, messages: List[BaseMessage], stage: str) -> AIMessage:
        try:
            return llm.invoke(messages)
        except APITimeoutError as exc:
            logger.error("Model call timed out during %s", stage)
            raise ProviderFailure(PROVIDER_ERROR_MESSAGE) from exc
        except Exception as exc:
            logger.exception("Model call failed during %s", stage)
            raise ProviderFailure(PROVIDER_ERROR_MESSAGE) from exc

    def awaiting_model(self, state: ConversationState) -> Dict[str, Any]:
        response = self._call_model(self.llm_with_tools, state["messages"], "initial call")
        actions: List[Any] = []
        rejected: Dict[str, str] = {}
        for call in response.tool_calls or []:
            try:
                actions.append(parse_tool_call(call.get("name"), call.get("args")))
            except ValidationFailure as exc:
                logger.warning("Rejected tool call %s: %s", call.get("name"), exc)
                rejected[call.get("id") or ""] = str(exc)
                actions.append(None)
        for bad_call in response.invalid_tool_calls or []:
            logger.warning("Model returned unparseable tool call %s", bad_call.get("name"))
            rejected[bad_call.get("id") or ""] = (
                f"Could not parse arguments for {bad_call.get('name')}: {bad_call.get('error') or 'invalid JSON'}"
            )
        return {
            "messages": [response],
            "reply": message_text(response),
            "tool_actions": actions,
            "rejected_calls": rejected,
        }

    def route_after_model(self, state: ConversationState) -> str:
        response = _last_ai_message(state)
        if response is None or state.get("reply"):
            return "done"
        if response.tool_calls or response.invalid_tool_calls:
            return "executing_read_tools"
        return "done"

    def executing_read_tools(self, state: ConversationState) -> Dict[str, Any]:
        response = _last_ai_message(state)
        library = state.get("library") or []
        rejected = state.get("rejected_calls") or {}
        results: List[BaseMessage] = []
        for call, action in zip(response.tool_calls, state.get("tool_actions") or []):
            call_id = call.get("id") or ""
            if action is None:
                content = f"Error: {rejected.get(call_id, 'invalid tool call')}"
            elif is_read_action(action):
                content = run_read_tool(action, library)
            else:
                content = write_placeholder(action.tool)
            results.append(ToolMessage(content=content, tool_call_id=call_id, name=call.get("name")))
        # unparseable calls still go back on the wire and each needs an answer
        for bad_call in response.invalid_tool_calls or []:
            call_id = bad_call.get("id") or ""
            results.append(
                ToolMessage(
                    content=f"Error: {rejected.get(call_id, 'invalid tool call')}",
                    tool_call_id=call_id,
                    name=bad_call.get("name") or "unknown",
                )
            )
        return {"messages": results}

    def awaiting_continuation(self, state: ConversationState) -> Dict[str, Any]:
        response = self._call_model(self.continuation_llm, state["messages"], "continuation")
        if response.tool_calls:
            logger.warning(
                "Dropping %s tool call(s) from continuation response: %s",
                len(response.tool_calls),
                [call.get("name") for call in response.tool_calls],
            )
        return {"messages": [response], "reply": message_text(response), "continued": True}

    def done(self, state: ConversationState) -> Dict[str, Any]:
        return {"reply": state.get("reply") or FALLBACK_ASSISTANT_MESSAGE}

    def build_graph(self):
        builder = StateGraph(ConversationState)
        builder.add_node("awaiting_model", self.awaiting_model)
        builder.add_node("executing_read_tools", self.executing_read_tools)
        builder.add_node("awaiting_continuation", self.awaiting_continuation)
        builder.add_node("done", self.done)

        builder.add_edge(START, "awaiting_model")
        builder.add_conditional_edges(
            "awaiting_model",
            self.route_after_model,
            ["executing_read_tools", "done"],
        )
        builder.add_edge("executing_read_tools", "awaiting_continuation")
        builder.add_edge("awaiting_continuation", "done")
        builder.add_edge("done", END)
        return builder.compile()

    def run_turn(
        self,
        transcript: Sequence[ChatMessage],
        library: CacheResolution,
        plan: Optional[WorkoutPlan] = None,
        user_context: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> TurnResult:
        system_prompt = build_system_prompt(user_context, plan, summarize_library(library.exercises), now)
        state = self.graph.invoke(
            {
                "messages": [SystemMessage(content=system_prompt)] + to_langchain_messages(transcript),
                "library": list(library.exercises),
                "reply": "",
                "tool_actions": [],
                "rejected_calls": {},
                "continued": False,
            }
        )
        actions = [
            action
            for action in state.get("tool_actions") or []
            if action is not None and not is_read_action(action)
        ]
        return TurnResult(
            message=state["reply"],
            tool_actions=actions,
            exercise_library_hash=library.hash,
            from_cache=library.from_cache,
            continued=bool(state.get("continued")),
        )
