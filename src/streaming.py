"""Synthetic token streaming of a finished reply."""

from __future__ import annotations

import asyncio
import re

from src.events import AgentEvent, EventSink, new_event_id

MIN_CHUNK_CHARS = 18


def chunk_response(text: str, min_chars: int = MIN_CHUNK_CHARS) -> list[str]:
    """Split *text* into ordered pieces of roughly ``min_chars`` characters.

    Whitespace is kept inside the pieces so that ``"".join(chunks) == text``.
    """
    parts = [p for p in re.split(r"(\s+)", text) if p]
    chunks: list[str] = []
    buf = ""
    for part in parts:
        buf += part
        if len(buf) >= min_chars:
            chunks.append(buf)
            buf = ""
    if buf:
        chunks.append(buf)
    return chunks or [text]


async def stream_text(emit: EventSink, text: str, delay_ms: int = 30) -> str:
    """Emit ``assistant_message`` → ``token``… → ``assistant_done`` for *text*.

    Returns the message id shared by all three event kinds.
    """
    message_id = new_event_id()
    emit(AgentEvent(event="assistant_message", data={"id": message_id}))
    for chunk in chunk_response(text):
        emit(AgentEvent(event="token", data={"id": message_id, "value": chunk}))
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
    emit(AgentEvent(event="assistant_done", data={"id": message_id}))
    return message_id
