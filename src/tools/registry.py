"""The fixed tool catalogue.

The registry is the single source of truth for valid tool names and their
input contracts; fast paths and LLM plans both refer to tools by name.
It is built once at start-up and shared read-only by every turn.
"""

from __future__ import annotations

from types import MappingProxyType

from src.services.crm_store import CrmStore
from src.services.embeddings import EmbeddingClient
from src.tools.auth import AuthTools
from src.tools.base import ToolDefinition, ToolRegistry
from src.tools.crm import CrmTools
from src.tools.docs import DocumentSearch
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

TOOL_NAMES = (
    "verify_passcode",
    "create_lead",
    "record_note",
    "list_notes",
    "delete_note",
    "list_leads",
    "schedule_followup",
    "list_followups",
    "complete_followup",
    "search_docs",
)


def build_tool_registry(
    store: CrmStore,
    embedder: EmbeddingClient,
    *,
    doc_search: DocumentSearch | None = None,
) -> ToolRegistry:
    auth = AuthTools(store)
    crm = CrmTools(store)
    docs = doc_search or DocumentSearch(store, embedder)

    definitions = [
        ToolDefinition(
            "verify_passcode",
            "Verify an invited user by name + passcode.",
            VerifyPasscodeInput,
            auth.verify_passcode,
        ),
        ToolDefinition("create_lead", "Create a potential lead.", CreateLeadInput, crm.create_lead),
        ToolDefinition(
            "record_note",
            "Save a note linked to the authenticated user.",
            RecordNoteInput,
            crm.record_note,
        ),
        ToolDefinition(
            "list_notes",
            "Retrieve the authenticated user's latest notes.",
            ListNotesInput,
            crm.list_notes,
        ),
        ToolDefinition("delete_note", "Delete one of your own notes by ID.", DeleteNoteInput, crm.delete_note),
        ToolDefinition("list_leads", "List recently registered leads.", ListLeadsInput, crm.list_leads),
        ToolDefinition(
            "schedule_followup",
            "Schedule a follow-up for the authenticated user.",
            ScheduleFollowUpInput,
            crm.schedule_followup,
        ),
        ToolDefinition(
            "list_followups",
            "List the authenticated user's follow-ups.",
            ListFollowUpsInput,
            crm.list_followups,
        ),
        ToolDefinition(
            "complete_followup",
            "Mark one of your own follow-ups as completed.",
            CompleteFollowUpInput,
            crm.complete_followup,
        ),
        ToolDefinition("search_docs", "Search the documentation vector index.", SearchDocsInput, docs.search_docs),
    ]
    registry = {d.name: d for d in definitions}
    assert tuple(registry) == TOOL_NAMES
    return MappingProxyType(registry)
