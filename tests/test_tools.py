"""Tests for the tool registry and the individual tools.

CRM and auth tools run against an in-memory SQLite database; document
search uses mocked store and embedder.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.agent import TurnActions
from src.services.crm_store import CrmStore
from src.services.embeddings import EmbeddingError
from src.tools.auth import AuthTools, normalize_name
from src.tools.base import NOT_AUTHENTICATED, ToolContext
from src.tools.crm import CrmTools
from src.tools.docs import DocumentSearch
from src.tools.registry import TOOL_NAMES, build_tool_registry
from src.tools.validation import (
    CompleteFollowUpInput,
    CreateLeadInput,
    DeleteNoteInput,
    ListFollowUpsInput,
    ListLeadsInput,
    ListNotesInput,
    RecordNoteInput,
    ScheduleFollowUpInput,
    SearchDocsInput,
    VerifyPasscodeInput,
)

# ── Helpers ──────────────────────────────────────────────────────────


def _ctx(make_session, user_id=None, name="Carla"):
    return ToolContext(make_session(user_id=user_id, name=name))


@pytest.fixture
def crm(seeded_engine):
    return CrmTools(CrmStore(seeded_engine))


# ── Registry ─────────────────────────────────────────────────────────


class TestRegistry:
    def test_contains_every_tool(self):
        registry = build_tool_registry(MagicMock(), MagicMock())
        assert tuple(registry) == TOOL_NAMES
        assert all(d.description for d in registry.values())

    def test_registry_is_read_only(self):
        registry = build_tool_registry(MagicMock(), MagicMock())
        with pytest.raises(TypeError):
            registry["extra"] = registry["list_notes"]


# ── Authentication ───────────────────────────────────────────────────


class TestVerifyPasscode:
    def test_normalize_name_ignores_case_and_accents(self):
        assert normalize_name("  SebastIÁN ") == "sebastian"

    @pytest.mark.asyncio
    async def test_accepts_matching_pair(self, seeded_engine, make_session):
        tools = AuthTools(CrmStore(seeded_engine))
        result = await tools.verify_passcode(
            VerifyPasscodeInput(name="sebastian", passcode="654321"), _ctx(make_session)
        )
        assert result["success"] is True
        assert result["user"] == {"id": 2, "name": "Sebastián"}

    @pytest.mark.asyncio
    async def test_rejects_wrong_name(self, seeded_engine, make_session):
        tools = AuthTools(CrmStore(seeded_engine))
        result = await tools.verify_passcode(
            VerifyPasscodeInput(name="Carla", passcode="654321"), _ctx(make_session)
        )
        assert result == {"success": False, "message": "Invalid name or passcode."}

    @pytest.mark.asyncio
    async def test_rejects_unknown_passcode(self, seeded_engine, make_session):
        tools = AuthTools(CrmStore(seeded_engine))
        result = await tools.verify_passcode(
            VerifyPasscodeInput(name="Carla", passcode="000000"), _ctx(make_session)
        )
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_does_not_touch_the_session(self, seeded_engine, make_session):
        ctx = _ctx(make_session)
        await AuthTools(CrmStore(seeded_engine)).verify_passcode(
            VerifyPasscodeInput(name="Carla", passcode="123456"), ctx
        )
        assert ctx.session.authenticated_user is None


# ── Auth gating ──────────────────────────────────────────────────────


class TestNotAuthenticated:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method, params",
        [
            ("create_lead", CreateLeadInput(name="Ana", email="ana@acme.com")),
            ("record_note", RecordNoteInput(text="hello")),
            ("list_notes", ListNotesInput()),
            ("delete_note", DeleteNoteInput(note_id=1)),
            ("schedule_followup", ScheduleFollowUpInput(title="Call")),
            ("list_followups", ListFollowUpsInput()),
            ("complete_followup", CompleteFollowUpInput(follow_up_id=1)),
        ],
    )
    async def test_returns_structured_failure(self, crm, make_session, method, params):
        result = await getattr(crm, method)(params, _ctx(make_session))
        assert result == {"success": False, "message": NOT_AUTHENTICATED}

    @pytest.mark.asyncio
    async def test_list_leads_is_global(self, crm, make_session):
        result = await crm.list_leads(ListLeadsInput(), _ctx(make_session))
        assert result["success"] is True


# ── Notes ────────────────────────────────────────────────────────────


class TestNotes:
    @pytest.mark.asyncio
    async def test_record_then_list(self, crm, make_session):
        ctx = _ctx(make_session, user_id=1)
        saved = await crm.record_note(RecordNoteInput(text="Call Bob on Monday"), ctx)
        assert saved["success"] is True
        assert saved["note_id"] > 0
        assert saved["created_at"] is not None

        listed = await crm.list_notes(ListNotesInput(), ctx)
        assert [n["text"] for n in listed["notes"]] == ["Call Bob on Monday"]

    @pytest.mark.asyncio
    async def test_empty_list_message(self, crm, make_session):
        result = await crm.list_notes(ListNotesInput(), _ctx(make_session, user_id=1))
        assert result["notes"] == []
        assert result["message"] == "No previous notes found."

    @pytest.mark.asyncio
    async def test_default_and_explicit_limits(self, crm, make_session):
        ctx = _ctx(make_session, user_id=1)
        for i in range(12):
            await crm.record_note(RecordNoteInput(text=f"note number {i}"), ctx)

        assert len((await crm.list_notes(ListNotesInput(), ctx))["notes"]) == 10
        assert len((await crm.list_notes(ListNotesInput(limit=3), ctx))["notes"]) == 3

    @pytest.mark.asyncio
    async def test_notes_are_private(self, crm, make_session):
        await crm.record_note(RecordNoteInput(text="Carla's secret"), _ctx(make_session, user_id=1))
        result = await crm.list_notes(ListNotesInput(), _ctx(make_session, user_id=2, name="Sebastián"))
        assert result["notes"] == []

    @pytest.mark.asyncio
    async def test_delete_own_note(self, crm, make_session):
        ctx = _ctx(make_session, user_id=1)
        saved = await crm.record_note(RecordNoteInput(text="temporary"), ctx)
        result = await crm.delete_note(DeleteNoteInput(note_id=saved["note_id"]), ctx)
        assert result["success"] is True
        assert result["deleted"]["id"] == saved["note_id"]
        assert result["deleted"]["text"] == "temporary"
        assert (await crm.list_notes(ListNotesInput(), ctx))["notes"] == []

    @pytest.mark.asyncio
    async def test_cannot_delete_another_users_note(self, crm, make_session):
        owner = _ctx(make_session, user_id=1)
        intruder = _ctx(make_session, user_id=2, name="Sebastián")
        saved = await crm.record_note(RecordNoteInput(text="keep me"), owner)

        result = await crm.delete_note(DeleteNoteInput(note_id=saved["note_id"]), intruder)

        assert result == {"success": False, "message": f"No note found with ID {saved['note_id']}."}
        remaining = await crm.list_notes(ListNotesInput(), owner)
        assert [n["id"] for n in remaining["notes"]] == [saved["note_id"]]


# ── Leads ────────────────────────────────────────────────────────────


class TestLeads:
    @pytest.mark.asyncio
    async def test_create_and_list(self, crm, make_session):
        ctx = _ctx(make_session, user_id=1)
        created = await crm.create_lead(
            CreateLeadInput(name="Ana Perez", email="ana@acme.com", source="LinkedIn"), ctx
        )
        assert created["success"] is True
        assert created["lead"]["name"] == "Ana Perez"
        assert created["lead"]["source"] == "LinkedIn"

        listed = await crm.list_leads(ListLeadsInput(), ctx)
        assert listed["leads"][0]["email"] == "ana@acme.com"

    @pytest.mark.asyncio
    async def test_empty_list_message(self, crm, make_session):
        result = await crm.list_leads(ListLeadsInput(limit=5), _ctx(make_session, user_id=1))
        assert result["leads"] == []
        assert result["message"] == "No leads registered yet."

    @pytest.mark.asyncio
    async def test_limit_is_respected(self, crm, make_session):
        ctx = _ctx(make_session, user_id=1)
        for i in range(4):
            await crm.create_lead(CreateLeadInput(name=f"Lead {i}", email=f"l{i}@acme.com"), ctx)
        result = await crm.list_leads(ListLeadsInput(limit=2), ctx)
        assert len(result["leads"]) == 2


# ── Follow-ups ───────────────────────────────────────────────────────


class TestFollowUps:
    @pytest.mark.asyncio
    async def test_schedule_and_list_in_due_order(self, crm, make_session):
        ctx = _ctx(make_session, user_id=1)
        base = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
        await crm.schedule_followup(ScheduleFollowUpInput(title="Later", due_at=base + timedelta(days=2)), ctx)
        await crm.schedule_followup(ScheduleFollowUpInput(title="Sooner", due_at=base), ctx)

        result = await crm.list_followups(ListFollowUpsInput(), ctx)
        assert result["status"] == "pending"
        assert [f["title"] for f in result["follow_ups"]] == ["Sooner", "Later"]

    @pytest.mark.asyncio
    async def test_complete_moves_to_completed(self, crm, make_session):
        ctx = _ctx(make_session, user_id=1)
        scheduled = await crm.schedule_followup(ScheduleFollowUpInput(title="Send proposal"), ctx)
        fid = scheduled["follow_up"]["id"]

        done = await crm.complete_followup(CompleteFollowUpInput(follow_up_id=fid), ctx)
        assert done["success"] is True
        assert done["follow_up"]["status"] == "completed"
        assert done["follow_up"]["completed_at"] is not None

        pending = await crm.list_followups(ListFollowUpsInput(status="pending"), ctx)
        completed = await crm.list_followups(ListFollowUpsInput(status="completed"), ctx)
        assert pending["follow_ups"] == []
        assert pending["message"] == "No follow-ups with that status."
        assert [f["id"] for f in completed["follow_ups"]] == [fid]

    @pytest.mark.asyncio
    async def test_cannot_complete_another_users_follow_up(self, crm, make_session):
        owner = _ctx(make_session, user_id=1)
        intruder = _ctx(make_session, user_id=2, name="Sebastián")
        scheduled = await crm.schedule_followup(ScheduleFollowUpInput(title="Mine"), owner)
        fid = scheduled["follow_up"]["id"]

        result = await crm.complete_followup(CompleteFollowUpInput(follow_up_id=fid), intruder)

        assert result == {"success": False, "message": f"No follow-up found with ID {fid}."}
        still_pending = await crm.list_followups(ListFollowUpsInput(), owner)
        assert [f["id"] for f in still_pending["follow_ups"]] == [fid]


# ── Document search ──────────────────────────────────────────────────


class TestDocumentSearch:
    @pytest.mark.asyncio
    async def test_filters_and_rounds_similarity(self, make_session):
        store = MagicMock()
        store.nearest_chunks = AsyncMock(return_value=[
            {"id": 1, "path": "docs/pricing.md", "content": "Plans start at...", "similarity": 0.91234},
            {"id": 2, "path": "docs/misc.md", "content": "Unrelated", "similarity": 0.1},
        ])
        embedder = MagicMock()
        embedder.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])

        search = DocumentSearch(store, embedder, limit=3, min_similarity=0.25)
        result = await search.search_docs(SearchDocsInput(question="pricing plans"), _ctx(make_session))

        embedder.embed.assert_awaited_once_with("pricing plans")
        store.nearest_chunks.assert_awaited_once_with([0.1, 0.2, 0.3], 3)
        assert result["success"] is True
        assert result["question"] == "pricing plans"
        assert result["results"] == [
            {"id": 1, "path": "docs/pricing.md", "content": "Plans start at...", "similarity": 0.912}
        ]

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, make_session):
        store = MagicMock()
        store.nearest_chunks = AsyncMock()
        embedder = MagicMock()
        embedder.embed = AsyncMock(side_effect=EmbeddingError("ollama down"))

        search = DocumentSearch(store, embedder)
        with pytest.raises(EmbeddingError):
            await search.search_docs(SearchDocsInput(question="anything"), _ctx(make_session))
        store.nearest_chunks.assert_not_awaited()


# ── Validation at the invocation boundary ────────────────────────────


class TestValidationHasNoSideEffects:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name, raw_input",
        [
            ("create_lead", {"name": "Ana", "email": "not-an-email"}),
            ("create_lead", {"email": "ana@acme.com"}),
            ("record_note", {"text": ""}),
            ("delete_note", {"note_id": 0}),
            ("complete_followup", {}),
            ("list_notes", {"limit": 99}),
            ("list_followups", {"status": "archived"}),
            ("schedule_followup", {"title": "Call", "due_at": "next blue moon"}),
            ("verify_passcode", {"name": "Carla"}),
            ("search_docs", "just a string"),
        ],
    )
    async def test_invalid_input_never_reaches_store(self, make_session, name, raw_input):
        store = AsyncMock(spec=CrmStore)
        embedder = MagicMock()
        sessions = AsyncMock()
        actions = TurnActions(sessions, build_tool_registry(store, embedder), stream_delay_ms=0)
        session = make_session(user_id=1)
        emitted = []

        outcome = await actions.invoke_tool(session, emitted.append, name, raw_input)

        assert outcome is None
        assert store.mock_calls == []
        assert [e.event for e in emitted] == ["error"]
        assert session.history[-1].content.startswith(f"TOOL_INPUT_ERROR {name}:")
        sessions.save_session.assert_awaited()

    @pytest.mark.parametrize(
        "model, raw, field, expected",
        [
            (DeleteNoteInput, {"noteId": 4}, "note_id", 4),
            (CompleteFollowUpInput, {"followUpId": "7"}, "follow_up_id", 7),
            (ScheduleFollowUpInput, {"title": "x", "dueAt": "2026-05-01T10:00:00Z"}, "due_at",
             datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)),
        ],
    )
    def test_camel_case_aliases(self, model, raw, field, expected):
        assert getattr(model.model_validate(raw), field) == expected
