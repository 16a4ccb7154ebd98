"""FastAPI route definitions for the Sales Desk agent API."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from src.agent import Agent
from src.api.schemas import ChatRequest, HealthResponse
from src.events import QueueEventSink

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}

# Turns outlive their HTTP response when the client disconnects
_running_turns: set[asyncio.Task] = set()


def _get_agent(request: Request) -> Agent:
    """Retrieve the agent from app state.

    The agent is built once during the FastAPI lifespan (see
    ``server.py``) together with the database engine and HTTP clients.
    """
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return agent


async def _run_turn(agent: Agent, body: ChatRequest, sink: QueueEventSink) -> None:
    try:
        await agent.run_turn(body.conversation_id, body.message, sink)
    finally:
        sink.finish()


async def _event_stream(
    agent: Agent,
    body: ChatRequest,
    request_id: str,
) -> AsyncGenerator[str, None]:
    """Start the turn as its own task and relay its events as SSE blocks.

    If the client goes away the generator is closed; the sink then drops
    further events but the turn task keeps running to completion.
    """
    sink = QueueEventSink()
    task = asyncio.create_task(_run_turn(agent, body, sink))
    _running_turns.add(task)
    task.add_done_callback(_running_turns.discard)

    try:
        while True:
            event = await sink.queue.get()
            if event is None:
                break
            yield event.to_sse()
    finally:
        if not task.done():
            sink.close()
            logger.info("[%s] Client disconnected; turn continues in background", request_id)


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/chat")
async def chat(request: ChatRequest, http_request: Request):
    """Send a message to the agent and stream the turn as Server-Sent Events.

    Each event is framed as ``event: <kind>`` + ``data: <json>``.  Failures
    inside the turn arrive as ``error`` events; the HTTP status is 200 once
    streaming has started.
    """
    agent = _get_agent(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    logger.debug("[%s] Chat turn for conversation %s", request_id, request.conversation_id)

    return StreamingResponse(
        _event_stream(agent, request, request_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
