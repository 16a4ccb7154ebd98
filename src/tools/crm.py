"""CRM tools: leads, notes and follow-ups.

Each tool performs one statement through :class:`CrmStore` and returns a
result dict with at least ``success`` and ``message``.  Tools scoped to
the caller's own data return a failure result (never raise) when the
session is not authenticated.
"""

from __future__ import annotations

import logging

from src.services.crm_store import CrmStore
from src.tools.base import NOT_AUTHENTICATED, ToolContext, ToolResult, failure
from src.tools.validation import (
    DEFAULT_LIST_LIMIT,
    CompleteFollowUpInput,
    CreateLeadInput,
    DeleteNoteInput,
    ListFollowUpsInput,
    ListLeadsInput,
    ListNotesInput,
    RecordNoteInput,
    ScheduleFollowUpInput,
)

logger = logging.getLogger(__name__)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


class CrmTools:
    def __init__(self, store: CrmStore) -> None:
        self._store = store

    # ── Leads ────────────────────────────────────────────────────────

    async def create_lead(self, params: CreateLeadInput, ctx: ToolContext) -> ToolResult:
        if ctx.user_id is None:
            return failure(NOT_AUTHENTICATED)
        source = params.source or None
        row = await self._store.insert_lead(params.name, params.email, source)
        lead = {
            "id": row["id"],
            "name": params.name,
            "email": params.email,
            "source": source,
            "created_at": row["created_at"],
        }
        logger.info("Lead %s created by user %s", row["id"], ctx.user_id)
        return {"success": True, "lead": lead, "message": "Lead registered"}

    async def list_leads(self, params: ListLeadsInput, ctx: ToolContext) -> ToolResult:
        leads = await self._store.list_leads(params.limit or DEFAULT_LIST_LIMIT)
        message = (
            "No leads registered yet."
            if not leads
            else f"Listed {_plural(len(leads), 'lead')}."
        )
        return {"success": True, "leads": leads, "message": message}

    # ── Notes ────────────────────────────────────────────────────────

    async def record_note(self, params: RecordNoteInput, ctx: ToolContext) -> ToolResult:
        if ctx.user_id is None:
            return failure(NOT_AUTHENTICATED)
        row = await self._store.insert_note(ctx.user_id, params.text)
        return {
            "success": True,
            "note_id": row["id"],
            "created_at": row["created_at"],
            "text": params.text,
            "message": "Note saved",
        }

    async def list_notes(self, params: ListNotesInput, ctx: ToolContext) -> ToolResult:
        if ctx.user_id is None:
            return failure(NOT_AUTHENTICATED)
        notes = await self._store.list_notes(ctx.user_id, params.limit or DEFAULT_LIST_LIMIT)
        message = (
            "No previous notes found."
            if not notes
            else f"Retrieved {_plural(len(notes), 'note')}."
        )
        return {"success": True, "notes": notes, "message": message}

    async def delete_note(self, params: DeleteNoteInput, ctx: ToolContext) -> ToolResult:
        if ctx.user_id is None:
            return failure(NOT_AUTHENTICATED)
        deleted = await self._store.delete_note(params.note_id, ctx.user_id)
        if deleted is None:
            return failure(f"No note found with ID {params.note_id}.")
        return {"success": True, "deleted": deleted, "message": f"Note {deleted['id']} deleted"}

    # ── Follow-ups ───────────────────────────────────────────────────

    async def schedule_followup(self, params: ScheduleFollowUpInput, ctx: ToolContext) -> ToolResult:
        if ctx.user_id is None:
            return failure(NOT_AUTHENTICATED)
        notes = params.notes or None
        row = await self._store.insert_follow_up(ctx.user_id, params.title, params.due_at, notes)
        follow_up = {
            "id": row["id"],
            "title": params.title,
            "due_at": row["due_at"],
            "notes": notes,
            "status": "pending",
            "created_at": row["created_at"],
        }
        return {"success": True, "follow_up": follow_up, "message": "Follow-up scheduled"}

    async def list_followups(self, params: ListFollowUpsInput, ctx: ToolContext) -> ToolResult:
        if ctx.user_id is None:
            return failure(NOT_AUTHENTICATED)
        status = params.status or "pending"
        rows = await self._store.list_follow_ups(
            ctx.user_id, status, params.limit or DEFAULT_LIST_LIMIT
        )
        message = (
            "No follow-ups with that status."
            if not rows
            else f"Listed {_plural(len(rows), 'follow-up')}."
        )
        return {"success": True, "status": status, "follow_ups": rows, "message": message}

    async def complete_followup(self, params: CompleteFollowUpInput, ctx: ToolContext) -> ToolResult:
        if ctx.user_id is None:
            return failure(NOT_AUTHENTICATED)
        row = await self._store.complete_follow_up(params.follow_up_id, ctx.user_id)
        if row is None:
            return failure(f"No follow-up found with ID {params.follow_up_id}.")
        follow_up = {**row, "status": "completed"}
        return {
            "success": True,
            "follow_up": follow_up,
            "message": f"Follow-up {row['id']} completed",
        }
