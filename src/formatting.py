"""Human-readable replies for tool outcomes.

Pure presentation: nothing here touches the session or the database.
Tools without a dedicated formatter fall back to their own ``message``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from src.models import ToolCallOutcome

MAX_LIST_ITEMS = 10

EMPTY_NOTES = "I couldn't find any notes yet. Want to record a new one?"
EMPTY_LEADS = "There are no leads registered yet. Want to create one?"
EMPTY_FOLLOWUPS = "There are no follow-ups with that status right now. We can schedule a new one if you like."
DEFAULT_SUCCESS = "Action completed."


def _format_dt(value: Any) -> str | None:
    """Render a timestamp as 'Mon 17 Feb 2026 at 10:30'; ``None`` if unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    return dt.strftime("%a %d %b %Y at %H:%M")


def _preview(text: Any, limit: int) -> str:
    """Trimmed text, cut to ``limit`` chars with an ellipsis."""
    if not isinstance(text, str):
        return ""
    text = text.strip()
    if len(text) > limit:
        return text[: limit - 3] + "…"
    return text


# ── Per-tool formatters ──────────────────────────────────────────────


def _record_note(params: dict, result: dict) -> str:
    note_id = result.get("note_id")
    when = _format_dt(result.get("created_at"))
    snippet = _preview(result.get("text") or params.get("text"), 140)

    reply = "Note saved"
    if note_id:
        reply += f" (ID {note_id})"
    if when:
        reply += f" on {when}"
    reply += "."
    if snippet:
        reply += f' Details: "{snippet}"'
    return reply + " Anything else?"


def _create_lead(params: dict, result: dict) -> str:
    lead = result.get("lead") or {}
    name = lead.get("name") or params.get("name")
    email = lead.get("email") or params.get("email")
    source = lead.get("source") or params.get("source")

    headline = " ".join(part for part in (name, f"<{email}>" if email else None) if part)
    meta = []
    if lead.get("id"):
        meta.append(f"ID {lead['id']}")
    if source:
        meta.append(f"source: {source}")
    suffix = f" ({' · '.join(meta)})" if meta else ""
    return f"Lead created: {headline or 'no details'}{suffix}."


def _verify_passcode(params: dict, result: dict) -> str:
    name = (result.get("user") or {}).get("name") or params.get("name")
    return (
        f"User verified: {name}. Would you like to register a lead, record a note, "
        "schedule a follow-up or search the documentation?"
    )


def _search_docs(params: dict, result: dict) -> str:
    matches = result.get("results") or []
    count = len(matches)
    extras = []
    if matches and matches[0].get("path"):
        extras.append(f"Example: {matches[0]['path']}")
    if result.get("question"):
        extras.append(f'Query: "{result["question"]}"')
    extra = f" {' • '.join(extras)}" if extras else ""
    return (
        f"I found {count} relevant fragment{'' if count == 1 else 's'}.{extra} "
        "Want me to put together an answer from them?"
    )


def _list_notes(params: dict, result: dict) -> str:
    notes = result.get("notes") or []
    if not notes:
        return EMPTY_NOTES
    lines = []
    for note in notes[:MAX_LIST_ITEMS]:
        line = f"• [#{note.get('id')}] {_preview(note.get('text'), 120) or '(no details)'}"
        when = _format_dt(note.get("created_at"))
        if when:
            line += f" • {when}"
        lines.append(line)
    return f"These are your latest notes ({len(notes)}):\n" + "\n".join(lines)


def _delete_note(params: dict, result: dict) -> str:
    deleted = result.get("deleted") or {}
    pieces = [f"Note {deleted.get('id')} deleted."]
    snippet = _preview(deleted.get("text"), 120)
    if snippet:
        pieces.append(f'Content: "{snippet}".')
    when = _format_dt(deleted.get("created_at"))
    if when:
        pieces.append(f"Created on {when}.")
    pieces.append("Anything else I can help with?")
    return " ".join(pieces)


def _list_leads(params: dict, result: dict) -> str:
    leads = result.get("leads") or []
    if not leads:
        return EMPTY_LEADS
    lines = []
    for lead in leads[:MAX_LIST_ITEMS]:
        meta = [
            f"<{lead['email']}>" if lead.get("email") else None,
            f"source: {lead['source']}" if lead.get("source") else None,
            _format_dt(lead.get("created_at")),
        ]
        meta_text = " • ".join(m for m in meta if m)
        line = f"• [ID {lead.get('id')}] {lead.get('name') or 'Unnamed'}"
        if meta_text:
            line += f" • {meta_text}"
        lines.append(line)
    return f"Latest leads ({len(leads)}):\n" + "\n".join(lines)


def _schedule_followup(params: dict, result: dict) -> str:
    follow_up = result.get("follow_up") or {}
    due = _format_dt(follow_up.get("due_at")) or "no due date"
    reply = f'Follow-up scheduled (ID {follow_up.get("id")}): "{follow_up.get("title")}" due {due}.'
    notes = _preview(follow_up.get("notes"), 120)
    if notes:
        reply += f' Notes: "{notes}".'
    return reply


def _list_followups(params: dict, result: dict) -> str:
    follow_ups = result.get("follow_ups") or []
    if not follow_ups:
        return EMPTY_FOLLOWUPS
    lines = []
    for item in follow_ups[:MAX_LIST_ITEMS]:
        status = "completed" if item.get("status") == "completed" else "pending"
        due = _format_dt(item.get("due_at")) or "no date"
        line = f"• [ID {item.get('id')}] {item.get('title')} ({status}, due {due})"
        notes = _preview(item.get("notes"), 100)
        if notes:
            line += f" – {notes}"
        lines.append(line)
    return f"Follow-up summary ({len(follow_ups)}):\n" + "\n".join(lines)


def _complete_followup(params: dict, result: dict) -> str:
    follow_up = result.get("follow_up") or {}
    pieces = [f"Follow-up {follow_up.get('id')} marked as completed."]
    completed = _format_dt(follow_up.get("completed_at"))
    if completed:
        pieces.append(f"Closed: {completed}.")
    due = _format_dt(follow_up.get("due_at"))
    if due:
        pieces.append(f"Original due date: {due}.")
    return " ".join(pieces)


_FORMATTERS: dict[str, Callable[[dict, dict], str]] = {
    "record_note": _record_note,
    "create_lead": _create_lead,
    "verify_passcode": _verify_passcode,
    "search_docs": _search_docs,
    "list_notes": _list_notes,
    "delete_note": _delete_note,
    "list_leads": _list_leads,
    "schedule_followup": _schedule_followup,
    "list_followups": _list_followups,
    "complete_followup": _complete_followup,
}


def format_tool_reply(outcome: ToolCallOutcome) -> str:
    """Reply text for a successful tool outcome."""
    result = outcome.result if isinstance(outcome.result, dict) else {}
    formatter = _FORMATTERS.get(outcome.name)
    if formatter is None:
        return result.get("message") or DEFAULT_SUCCESS
    return formatter(outcome.params or {}, result)


def format_tool_error(outcome: ToolCallOutcome) -> str:
    """Reply text for a tool that ran but reported failure."""
    result = outcome.result if isinstance(outcome.result, dict) else {}
    return result.get("message") or f"Could not run {outcome.name}."
