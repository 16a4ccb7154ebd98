"""LangGraph-based orchestration loop for the Sales Desk agent.

Architecture:
  Each user turn runs through a LangGraph StateGraph:

    1. **record_message**: append the user's text to the session and persist
    2. **authenticate**: credential fast path (unauthenticated sessions only)
    3. **quick_actions**: action and list fast paths (authenticated only)
    4. **search_docs**: documentation fast path (any session)
    5. **plan**: ask the LLM for a JSON plan (one strict retry)
    6. **act**: run the planned tool or stream the planned reply
    7. **iteration_limit**: terminal error when the loop budget is spent

  Routing:
    record_message → authenticate → quick_actions → search_docs → plan
    any fast-path node → END once a tool outcome has been replied to
    plan → act → (done?) END | (budget left?) plan | iteration_limit → END

  Fast paths are regex extractors (see :mod:`src.intents`) that skip the
  LLM entirely.  Events go out through the ``emit`` callable passed in
  ``config["configurable"]``; the session is persisted after every step
  that changes it.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph
from pydantic import ValidationError
from typing_extensions import TypedDict

from src import events
from src.config import MAX_TOOL_ITERATIONS, STREAM_CHUNK_DELAY_MS
from src.formatting import format_tool_error, format_tool_reply
from src.intents import (
    extract_complete_followup,
    extract_create_lead,
    extract_credentials,
    extract_list_followups,
    extract_list_leads,
    extract_list_notes,
    extract_record_note,
    extract_schedule_followup,
    extract_search_docs,
)
from src.models import AuthenticatedUser, RespondPlan, Session, ToolCallOutcome, ToolPlan
from src.planning import fallback_plan, parse_plan
from src.prompts import get_system_prompt
from src.services.llm_client import LLMClient, LLMProviderError
from src.services.metrics import metrics
from src.services.session_store import SessionStore
from src.streaming import stream_text
from src.tools.base import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

MAX_ITERATIONS_CAP = 10
ITERATION_LIMIT_MESSAGE = "The agent reached the iteration limit without replying."
UNEXPECTED_ERROR_MESSAGE = "The agent hit an unexpected error while processing the message."

# Authenticated fast paths, in priority order.  Actions come before lists.
QUICK_ACTIONS: list[tuple[str, Callable[[str], dict[str, Any] | None]]] = [
    ("complete_followup", extract_complete_followup),
    ("schedule_followup", extract_schedule_followup),
    ("create_lead", extract_create_lead),
    ("record_note", extract_record_note),
    ("list_notes", extract_list_notes),
    ("list_leads", extract_list_leads),
    ("list_followups", extract_list_followups),
]


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict, total=False):
    """The state that flows through the graph for one turn.

    ``session`` is mutated in place by the nodes; ``done`` is set once a
    terminal step (reply or error) has been emitted.
    """

    session: Session
    message: str
    iteration: int
    plan: ToolPlan | RespondPlan | None
    done: bool


def _emitter(config: RunnableConfig) -> events.EventSink:
    return config["configurable"]["emit"]


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def _to_json(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


# ── Tool invocation + replies ────────────────────────────────────────


class TurnActions:
    """Side-effecting steps shared by the fast paths and the LLM loop."""

    def __init__(self, sessions: SessionStore, tools: ToolRegistry, stream_delay_ms: int):
        self.sessions = sessions
        self.tools = tools
        self.stream_delay_ms = stream_delay_ms

    async def invoke_tool(
        self,
        session: Session,
        emit: events.EventSink,
        name: str | None,
        raw_input: Any,
    ) -> ToolCallOutcome | None:
        """Validate, run and record one tool call.

        Returns ``None`` when the call never produced a tool result (unknown
        name, invalid input, or an exception inside the tool); the caller
        then moves on instead of replying.
        """
        definition = self.tools.get(name) if name else None
        if definition is None:
            emit(events.error(f"Unknown tool: {name}"))
            session.append("assistant", f"TOOL_ERROR {name}")
            await self.sessions.save_session(session)
            return None

        try:
            params = definition.input_model.model_validate(raw_input if raw_input is not None else {})
        except ValidationError as exc:
            msg = _validation_message(exc)
            emit(events.error(f"Invalid input for {name}: {msg}"))
            session.append("assistant", f"TOOL_INPUT_ERROR {name}: {msg}")
            await self.sessions.save_session(session)
            return None

        params_dict = params.model_dump(mode="json", exclude_none=True)
        call_id = events.new_event_id()
        emit(events.tool_started(call_id, name, params_dict))

        t0 = time.perf_counter()
        try:
            result = await definition.execute(params, ToolContext(session))
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_tool(name, "exception", latency_ms=elapsed)
            logger.exception("Tool %s raised", name)
            emit(events.tool_finished(call_id, name, params_dict, None, "error", error=str(exc)))
            session.append("assistant", f"TOOL_EXEC_ERROR {name}: {exc}")
            await self.sessions.save_session(session)
            return None

        elapsed = (time.perf_counter() - t0) * 1000
        status = "error" if result.get("success") is False else "success"
        metrics.record_tool(name, status, latency_ms=elapsed)
        logger.debug("Tool %s finished: %s (%.0fms)", name, status, elapsed)

        emit(events.tool_finished(
            call_id, name, params_dict, result, status,
            error=(result.get("message") or "Unknown error") if status == "error" else None,
        ))
        session.append("assistant", f"TOOL_CALL {name}: {_to_json(params_dict)}")
        session.append("assistant", f"TOOL_RESULT {name}: {_to_json(result)}")

        # Identity is set once per session, and only by a verified passcode
        if name == "verify_passcode" and status == "success" and session.authenticated_user is None:
            session.authenticated_user = AuthenticatedUser.model_validate(result["user"])
            emit(events.state(session.authenticated_user.model_dump()))
            logger.info("Session %s authenticated as user %s", session.id, session.authenticated_user.id)

        await self.sessions.save_session(session)
        return ToolCallOutcome(name=name, status=status, params=params_dict, result=result)

    async def reply(self, session: Session, emit: events.EventSink, text: str) -> None:
        """Stream *text* to the client, then record and persist it."""
        await stream_text(emit, text, delay_ms=self.stream_delay_ms)
        session.append("assistant", text)
        await self.sessions.save_session(session)

    async def reply_to_outcome(self, session: Session, emit: events.EventSink, outcome: ToolCallOutcome) -> None:
        text = format_tool_reply(outcome) if outcome.succeeded else format_tool_error(outcome)
        await self.reply(session, emit, text)

    async def run_fast_path(
        self,
        session: Session,
        emit: events.EventSink,
        name: str,
        payload: dict[str, Any],
    ) -> bool:
        """Invoke a matched fast path; ``True`` when the turn is finished."""
        logger.debug("Fast path %s matched: %s", name, payload)
        outcome = await self.invoke_tool(session, emit, name, payload)
        if outcome is None:
            return False
        await self.reply_to_outcome(session, emit, outcome)
        return True


# ── Nodes ────────────────────────────────────────────────────────────


def _make_record_message_node(actions: TurnActions):
    async def record_message_node(state: TurnState, config: RunnableConfig) -> dict:
        session = state["session"]
        session.append("user", state["message"])
        await actions.sessions.save_session(session)
        return {"iteration": 0, "done": False}

    return record_message_node


def _make_authenticate_node(actions: TurnActions):
    async def authenticate_node(state: TurnState, config: RunnableConfig) -> dict:
        session = state["session"]
        if session.is_authenticated:
            return {"done": False}
        creds = extract_credentials(state["message"])
        if creds is None:
            return {"done": False}
        done = await actions.run_fast_path(session, _emitter(config), "verify_passcode", creds)
        return {"done": done}

    return authenticate_node


def _make_quick_actions_node(actions: TurnActions):
    async def quick_actions_node(state: TurnState, config: RunnableConfig) -> dict:
        session = state["session"]
        if not session.is_authenticated:
            return {"done": False}
        for tool_name, extractor in QUICK_ACTIONS:
            payload = extractor(state["message"])
            if payload is None:
                continue
            if await actions.run_fast_path(session, _emitter(config), tool_name, payload):
                return {"done": True}
        return {"done": False}

    return quick_actions_node


def _make_search_docs_node(actions: TurnActions):
    async def search_docs_node(state: TurnState, config: RunnableConfig) -> dict:
        payload = extract_search_docs(state["message"])
        if payload is None:
            return {"done": False}
        done = await actions.run_fast_path(state["session"], _emitter(config), "search_docs", payload)
        return {"done": done}

    return search_docs_node


def _make_plan_node(actions: TurnActions, llm: LLMClient):
    """Create the planning node.

    A provider failure ends the turn with a canned reply.  An unparseable
    answer gets exactly one retry with a stricter prompt, then the
    deterministic fallback plan.
    """

    async def plan_node(state: TurnState, config: RunnableConfig) -> dict:
        session = state["session"]
        emit = _emitter(config)
        iteration = state.get("iteration", 0) + 1
        authenticated = session.is_authenticated

        try:
            raw = await llm.complete(
                get_system_prompt(session.authenticated_user),
                session.history,
                temperature=0.0,
                max_tokens=1024,
                operation="plan",
            )
            plan = parse_plan(raw)
            if plan is None:
                logger.warning("Unparseable plan (iteration %d), retrying with strict prompt", iteration)
                retry = await llm.complete(
                    get_system_prompt(session.authenticated_user, strict=True),
                    session.history,
                    temperature=0.0,
                    max_tokens=512,
                    operation="plan_retry",
                )
                plan = parse_plan(retry)
        except LLMProviderError as exc:
            logger.warning("LLM provider failed: %s", exc)
            plan = fallback_plan(str(exc), authenticated)
            emit(events.thought(plan.thought))
            await actions.reply(session, emit, plan.final_response)
            return {"iteration": iteration, "plan": None, "done": True}

        if plan is None:
            plan = fallback_plan("Model returned invalid JSON", authenticated)

        emit(events.thought(plan.thought))
        logger.debug("Plan %d: action=%s", iteration, plan.action)
        return {"iteration": iteration, "plan": plan, "done": False}

    return plan_node


def _make_act_node(actions: TurnActions):
    async def act_node(state: TurnState, config: RunnableConfig) -> dict:
        session = state["session"]
        emit = _emitter(config)
        plan = state["plan"]

        if isinstance(plan, RespondPlan):
            await actions.reply(session, emit, plan.final_response)
            return {"done": True}

        outcome = await actions.invoke_tool(session, emit, plan.tool.name, plan.tool.input)
        if outcome is None:
            return {"done": False}
        # A structured tool error ends the turn too; the model is not asked again
        await actions.reply_to_outcome(session, emit, outcome)
        return {"done": True}

    return act_node


def _make_iteration_limit_node():
    async def iteration_limit_node(state: TurnState, config: RunnableConfig) -> dict:
        logger.warning("Session %s hit the iteration limit", state["session"].id)
        _emitter(config)(events.error(ITERATION_LIMIT_MESSAGE))
        return {"done": True}

    return iteration_limit_node


# ── Conditional edges ────────────────────────────────────────────────


def _end_or(next_node: str) -> Callable[[TurnState], str]:
    def route(state: TurnState) -> str:
        return END if state.get("done") else next_node

    return route


def _make_after_act_router(max_iterations: int) -> Callable[[TurnState], str]:
    def route_after_act(state: TurnState) -> str:
        if state.get("done"):
            return END
        if state.get("iteration", 0) >= max_iterations:
            return "iteration_limit"
        return "plan"

    return route_after_act


# ── Graph assembly ───────────────────────────────────────────────────


def build_turn_graph(actions: TurnActions, llm: LLMClient, max_iterations: int):
    """Build and compile the per-turn graph.

    Returns a compiled graph that can be invoked with:
        await graph.ainvoke(
            {"session": session, "message": "..."},
            config={"configurable": {"emit": emit}},
        )
    """
    graph = StateGraph(TurnState)

    graph.add_node("record_message", _make_record_message_node(actions))
    graph.add_node("authenticate", _make_authenticate_node(actions))
    graph.add_node("quick_actions", _make_quick_actions_node(actions))
    graph.add_node("search_docs", _make_search_docs_node(actions))
    graph.add_node("plan", _make_plan_node(actions, llm))
    graph.add_node("act", _make_act_node(actions))
    graph.add_node("iteration_limit", _make_iteration_limit_node())

    graph.set_entry_point("record_message")
    graph.add_edge("record_message", "authenticate")
    graph.add_conditional_edges(
        "authenticate", _end_or("quick_actions"), {"quick_actions": "quick_actions", END: END},
    )
    graph.add_conditional_edges(
        "quick_actions", _end_or("search_docs"), {"search_docs": "search_docs", END: END},
    )
    graph.add_conditional_edges("search_docs", _end_or("plan"), {"plan": "plan", END: END})
    graph.add_conditional_edges("plan", _end_or("act"), {"act": "act", END: END})
    graph.add_conditional_edges(
        "act",
        _make_after_act_router(max_iterations),
        {"plan": "plan", "iteration_limit": "iteration_limit", END: END},
    )
    graph.add_edge("iteration_limit", END)

    return graph.compile()


class Agent:
    """Entry point for one conversation turn.

    Resources are injected once at start-up (see ``src.server`` and
    ``src.main``) and shared by every turn.
    """

    def __init__(
        self,
        sessions: SessionStore,
        tools: ToolRegistry,
        llm: LLMClient,
        *,
        max_iterations: int = MAX_TOOL_ITERATIONS,
        stream_delay_ms: int = STREAM_CHUNK_DELAY_MS,
    ):
        self.max_iterations = max(1, min(MAX_ITERATIONS_CAP, max_iterations))
        self._sessions = sessions
        self._actions = TurnActions(sessions, tools, stream_delay_ms)
        self._graph = build_turn_graph(self._actions, llm, self.max_iterations)
        logger.debug(
            "Agent compiled: %d tools, max %d iterations", len(tools), self.max_iterations,
        )

    async def run_turn(self, conversation_id: str, user_message: str, emit: events.EventSink) -> None:
        """Process one user message to a terminal outcome.

        Raises ``ValueError`` for an empty id or message; every other failure
        is logged and reported as an ``error`` event.
        """
        if not conversation_id or not conversation_id.strip():
            raise ValueError("conversation_id must not be empty")
        if not user_message or not user_message.strip():
            raise ValueError("user_message must not be empty")

        t0 = time.perf_counter()
        try:
            session = await self._sessions.get_session(conversation_id)
            await self._graph.ainvoke(
                {"session": session, "message": user_message},
                config={
                    "configurable": {"emit": emit},
                    "recursion_limit": 2 * self.max_iterations + 10,
                },
            )
        except Exception:
            logger.exception("Turn failed for conversation %s", conversation_id)
            try:
                emit(events.error(UNEXPECTED_ERROR_MESSAGE))
            except Exception:
                logger.exception("Could not deliver the error event")
        finally:
            logger.debug(
                "Turn for %s finished in %.0fms", conversation_id, (time.perf_counter() - t0) * 1000,
            )


def create_agent(
    sessions: SessionStore,
    tools: ToolRegistry,
    llm: LLMClient,
    **kwargs: Any,
) -> Agent:
    """Build the Sales Desk agent from already-constructed resources."""
    return Agent(sessions, tools, llm, **kwargs)
