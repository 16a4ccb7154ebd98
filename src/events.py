"""Typed events emitted by the agent during a turn.

A turn produces an append-only, strictly ordered sequence of events that
the transport layer (SSE route, CLI) forwards to the client.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

EventKind = Literal[
    "thought",
    "tool",
    "tool_result",
    "assistant_message",
    "token",
    "assistant_done",
    "state",
    "error",
]


class AgentEvent(BaseModel):
    event: EventKind
    data: dict[str, Any] = Field(default_factory=dict)

    def to_sse(self) -> str:
        """Frame the event as a Server-Sent Events block."""
        payload = json.dumps(self.data, default=str, ensure_ascii=False)
        return f"event: {self.event}\ndata: {payload}\n\n"


EventSink = Callable[[AgentEvent], None]


def new_event_id() -> str:
    return str(uuid.uuid4())


# ── Constructors ─────────────────────────────────────────────────────


def thought(text: str) -> AgentEvent:
    return AgentEvent(event="thought", data={"id": new_event_id(), "text": text})


def tool_started(call_id: str, name: str, params: Any) -> AgentEvent:
    return AgentEvent(event="tool", data={"id": call_id, "name": name, "input": params})


def tool_finished(
    call_id: str,
    name: str,
    params: Any,
    result: Any,
    status: str,
    error: str | None = None,
) -> AgentEvent:
    data: dict[str, Any] = {
        "id": call_id,
        "name": name,
        "input": params,
        "result": result,
        "status": status,
    }
    if error is not None:
        data["error"] = error
    return AgentEvent(event="tool_result", data=data)


def state(authenticated_user: dict[str, Any] | None) -> AgentEvent:
    return AgentEvent(event="state", data={"authenticated_user": authenticated_user})


def error(message: str) -> AgentEvent:
    return AgentEvent(event="error", data={"message": message})


# ── Sinks ────────────────────────────────────────────────────────────


class QueueEventSink:
    """Event sink that feeds an ``asyncio.Queue`` for a streaming response.

    Once :meth:`close` is called (client disconnected) further events are
    dropped silently; the turn itself keeps running so in-flight side
    effects complete normally.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[AgentEvent | None] = asyncio.Queue()
        self._closed = False

    def __call__(self, event: AgentEvent) -> None:
        if self._closed:
            logger.debug("Dropping %s event: client went away", event.event)
            return
        self.queue.put_nowait(event)

    def finish(self) -> None:
        """Signal the consumer that the turn is over."""
        self.queue.put_nowait(None)

    def close(self) -> None:
        self._closed = True
