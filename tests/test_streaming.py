"""Tests for synthetic token streaming and event framing."""

from __future__ import annotations

import json

import pytest

from src import events
from src.events import AgentEvent, QueueEventSink
from src.streaming import chunk_response, stream_text


class TestChunkResponse:
    @pytest.mark.parametrize(
        "text",
        [
            "Hi",
            "Note saved (ID 4) on Tue 10 Mar 2026 at 09:15. Anything else?",
            "Latest leads (2):\n• [ID 2] Ana\n• [ID 1] Bob",
            "   leading and trailing   ",
        ],
    )
    def test_chunks_join_back_to_original(self, text):
        assert "".join(chunk_response(text)) == text

    def test_long_text_is_split(self):
        text = "word " * 40
        chunks = chunk_response(text)
        assert len(chunks) > 1
        assert all(len(c) >= 18 for c in chunks[:-1])

    def test_empty_text_gives_single_chunk(self):
        assert chunk_response("") == [""]


class TestStreamText:
    @pytest.mark.asyncio
    async def test_event_sequence(self):
        received: list[AgentEvent] = []
        message_id = await stream_text(received.append, "Hello there, this is a streamed reply.", delay_ms=0)

        kinds = [e.event for e in received]
        assert kinds[0] == "assistant_message"
        assert kinds[-1] == "assistant_done"
        assert set(kinds[1:-1]) == {"token"}
        assert all(e.data["id"] == message_id for e in received)
        assert "".join(e.data["value"] for e in received[1:-1]) == "Hello there, this is a streamed reply."


class TestEvents:
    def test_sse_framing(self):
        frame = events.error("boom").to_sse()
        assert frame.startswith("event: error\ndata: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame.split("data: ", 1)[1]) == {"message": "boom"}

    def test_tool_finished_omits_error_on_success(self):
        event = events.tool_finished("c1", "list_notes", {}, {"success": True}, "success")
        assert "error" not in event.data
        assert event.data["status"] == "success"

    def test_tool_finished_keeps_error(self):
        event = events.tool_finished("c1", "delete_note", {"note_id": 9}, None, "error", error="db down")
        assert event.data["error"] == "db down"

    def test_sse_serialises_datetimes(self):
        from datetime import datetime

        event = events.tool_finished("c1", "record_note", {}, {"created_at": datetime(2026, 1, 1)}, "success")
        assert "2026-01-01" in event.to_sse()


class TestQueueEventSink:
    @pytest.mark.asyncio
    async def test_delivers_until_finished(self):
        sink = QueueEventSink()
        sink(events.thought("thinking"))
        sink.finish()
        first = await sink.queue.get()
        assert first.event == "thought"
        assert await sink.queue.get() is None

    def test_closed_sink_drops_events(self):
        sink = QueueEventSink()
        sink.close()
        sink(events.thought("ignored"))
        assert sink.queue.empty()
