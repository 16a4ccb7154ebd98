"""Deterministic fast-path intent extractors.

Each extractor is a pure function: it inspects the raw user text and
returns either a complete tool input (a dict ready for the tool's input
model) or ``None``.  Extractors never partially match: when any required
piece is missing they decline and the agent falls through to the next
path.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Any

from src.tools.validation import EMAIL_RE

_LETTERS = "A-Za-zÀ-ÖØ-öø-ÿ"

_DISPLAY_VERB_RE = re.compile(r"\b(?:show|list|view|see|display|query|check)\b", re.I)
_LIMIT_RE = re.compile(r"\b(\d{1,2})\b")


def strip_punct(text: str) -> str:
    """Trim leading and trailing punctuation, collapse whitespace."""
    text = re.sub(rf"^[^{_LETTERS}0-9]+", "", text)
    text = re.sub(rf"[^{_LETTERS}0-9)]+$", "", text)
    return re.sub(r"\s+", " ", text).strip()


# ── Credentials ──────────────────────────────────────────────────────

_NAME_RE = re.compile(
    rf"\b(?:i\s+am|i'm|my\s+name\s+is)\s+"
    rf"([{_LETTERS}'-]+(?:\s+[{_LETTERS}'-]+){{0,3}}?)"
    r"(?=\s*(?:[,.;:!?)]|$)|\s+(?:and|my|with|here|the|passcode|code|pin)\b)",
    re.I,
)
_PASSCODE_RE = re.compile(
    r"\b(?:passcode|pass\s+code|code|pin)\s*(?:is|:)?\s*([A-Za-z0-9-]{3,64})\b",
    re.I,
)


def extract_credentials(text: str) -> dict[str, str] | None:
    """Match "I am Carla, my passcode is 123456" style self-introductions."""
    name_match = _NAME_RE.search(text)
    pass_match = _PASSCODE_RE.search(text)
    if not name_match or not pass_match:
        return None
    name = strip_punct(name_match.group(1))
    passcode = pass_match.group(1).strip()
    if not name or not passcode:
        return None
    return {"name": name, "passcode": passcode}


# ── Notes ────────────────────────────────────────────────────────────

_NOTE_VERB_RE = re.compile(
    r"\b(?:register|save|record|add|take|write\s+down|jot\s+down)\b.*?\bnote\b[:\s,.-]*(.+)$",
    re.I | re.S,
)
_NOTE_PREFIX_RE = re.compile(r"\bnote\s*[:\-]\s*(.+)$", re.I | re.S)


def extract_record_note(text: str) -> dict[str, str] | None:
    match = _NOTE_VERB_RE.search(text) or _NOTE_PREFIX_RE.search(text)
    if not match:
        return None
    body = strip_punct(match.group(1))
    return {"text": body} if len(body) >= 3 else None


# ── Leads ────────────────────────────────────────────────────────────

_EMAIL_IN_TEXT_RE = re.compile(r"<?([A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,})>?")
_LEAD_RE = re.compile(
    r"\blead\s+for\s+(.+?)\s+with\s+(?:an?\s+)?(?:e-?mail|mail)(?:\s+address)?\s*:?\s+(.+?)"
    r"(?:\s+from\s+(.+?))?[.?!]*$",
    re.I,
)
_LEAD_FILLER_WORDS = {"with", "for", "of", "about", "is", "there", "a", "an", "the"}


def _lead_payload(name: str, email: str, source: str | None) -> dict[str, str] | None:
    name = strip_punct(name)
    source = strip_punct(source or "")
    if not name or not EMAIL_RE.match(email):
        return None
    if all(word in _LEAD_FILLER_WORDS for word in name.lower().split()):
        return None
    payload = {"name": name, "email": email}
    if source:
        payload["source"] = source
    return payload


def extract_create_lead(text: str) -> dict[str, str] | None:
    """Match "lead for Ana with email ana@x.com from LinkedIn"."""
    match = _LEAD_RE.search(text.strip())
    if match:
        email_match = _EMAIL_IN_TEXT_RE.search(match.group(2))
        email = email_match.group(1) if email_match else match.group(2).strip()
        payload = _lead_payload(match.group(1), email, match.group(3))
        if payload:
            return payload

    # Fallback: "<lead ...> NAME email [from SOURCE]"
    if not re.search(r"\blead\b", text, re.I):
        return None
    if "?" in text or _INTERROGATIVE_RE.search(text):
        return None
    email_match = _EMAIL_IN_TEXT_RE.search(text)
    if not email_match:
        return None
    email = email_match.group(1)
    before = text[:email_match.start()]
    before = re.sub(r".*\b(?:lead|for)\b\s*:?", "", before, flags=re.I | re.S)
    before = re.sub(r"\b(?:with\s+)?(?:an?\s+)?(?:e-?mail|mail)\s*:?\s*$", "", before.strip(), flags=re.I)
    after = text[email_match.end():]
    source_match = re.search(r"\b(?:from|of)\s+(.+?)[.?!]*$", after, re.I)
    return _lead_payload(before, email, source_match.group(1) if source_match else None)


# ── Follow-ups ───────────────────────────────────────────────────────

_FOLLOWUP = r"follow[- ]?up"
_COMPLETE_BEFORE_RE = re.compile(
    rf"\b(?:mark|complete|close|finish)\b.*?{_FOLLOWUP}\s*#?\s*(?P<id>\d+)\b", re.I
)
_COMPLETE_AFTER_RE = re.compile(
    rf"{_FOLLOWUP}\s*#?\s*(?P<id>\d+)\b.*?\b(?:complete[d]?|close[d]?|done|finished)\b", re.I
)


def extract_complete_followup(text: str) -> dict[str, int] | None:
    """Match "mark follow-up #3 as done" / "follow-up 3 is completed"."""
    match = _COMPLETE_BEFORE_RE.search(text) or _COMPLETE_AFTER_RE.search(text)
    if not match:
        return None
    return {"follow_up_id": int(match.group("id"))}


_RELATIVE_DAY = r"(day\s+after\s+tomorrow|tomorrow|today)"
_CLOCK = r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)?"
_RELATIVE_RE = re.compile(rf"\b{_RELATIVE_DAY}\s*(?:at\s+)?{_CLOCK}(?![\d:])", re.I)
_RELATIVE_REVERSED_RE = re.compile(rf"\bat\s+{_CLOCK}\s+{_RELATIVE_DAY}\b", re.I)
_ABSOLUTE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})\b.*?\bat\s+" + _CLOCK + r"(?![\d:])", re.I)
_SCHEDULE_VERB_RE = re.compile(
    rf"\b(?:schedule|set\s+up|book|create|add|plan)\s+(?:an?\s+)?(?:new\s+)?{_FOLLOWUP}s?\b", re.I
)
_FILLER_RE = re.compile(r"\b(?:for|with|about|on)\b", re.I)


def _to_24h(hour: int, minute: int, meridiem: str | None) -> tuple[int, int] | None:
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        meridiem = meridiem.lower()
        if meridiem == "pm" and hour < 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def parse_due_at(text: str, now: datetime | None = None) -> tuple[datetime, str] | None:
    """Find a date phrase in *text*; return (timestamp, matched phrase)."""
    now = now or datetime.now().astimezone()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    relative = _RELATIVE_RE.search(text)
    if relative:
        word, hour, minute, meridiem = relative.groups()
    else:
        reversed_match = _RELATIVE_REVERSED_RE.search(text)
        if reversed_match:
            hour, minute, meridiem, word = reversed_match.groups()
            relative = reversed_match
    if relative:
        clock = _to_24h(int(hour), int(minute or 0), meridiem)
        if clock is None:
            return None
        word = word.lower()
        if word.startswith("day"):
            day = midnight + timedelta(days=2)
        elif word == "tomorrow":
            day = midnight + timedelta(days=1)
        else:
            day = midnight
        return day.replace(hour=clock[0], minute=clock[1]), relative.group(0)

    absolute = _ABSOLUTE_RE.search(text)
    if absolute:
        day_s, month_s, hour, minute, meridiem = absolute.groups()
        clock = _to_24h(int(hour), int(minute or 0), meridiem)
        if clock is None:
            return None
        try:
            when = midnight.replace(month=int(month_s), day=int(day_s))
        except ValueError:
            return None
        return when.replace(hour=clock[0], minute=clock[1]), absolute.group(0)

    return None


def extract_schedule_followup(text: str, now: datetime | None = None) -> dict[str, Any] | None:
    """Match any sentence carrying a concrete date phrase.

    The title is what remains after removing the scheduling verb, the date
    phrase and filler connectors.
    """
    parsed = parse_due_at(text, now=now)
    if parsed is None:
        return None
    due_at, matched = parsed

    title = text.replace(matched, " ")
    title = _SCHEDULE_VERB_RE.sub(" ", title)
    title = _FILLER_RE.sub(" ", title)
    title = strip_punct(title)
    if len(title) < 3:
        title = "Follow-up"
    return {"title": title, "due_at": due_at}


# ── Document search ──────────────────────────────────────────────────

_INTERROGATIVE_RE = re.compile(r"\b(?:how|what|where|when|why|which|who)\b", re.I)
_DOCS_WORDS_RE = re.compile(
    r"\b(?:documentation|docs?|manual|guide|handbook|playbook|onboarding|practices)\b", re.I
)
_EXPLICIT_SEARCH_RE = re.compile(r"^\s*(?:search|look\s+up|find)\b", re.I)


def extract_search_docs(text: str) -> dict[str, str] | None:
    is_question = "?" in text or "¿" in text or bool(_INTERROGATIVE_RE.search(text))
    has_docs_words = bool(_DOCS_WORDS_RE.search(text))
    explicit = bool(_EXPLICIT_SEARCH_RE.search(text))
    if has_docs_words and (is_question or explicit):
        question = strip_punct(text)
        return {"question": question} if question else None
    return None


# ── Listings ─────────────────────────────────────────────────────────


def _limit(text: str) -> dict[str, int]:
    match = _LIMIT_RE.search(text)
    if match and int(match.group(1)) > 0:
        return {"limit": int(match.group(1))}
    return {}


def extract_list_notes(text: str) -> dict[str, Any] | None:
    if re.search(r"\bnotes?\b", text, re.I) and _DISPLAY_VERB_RE.search(text):
        return _limit(text)
    return None


def extract_list_leads(text: str) -> dict[str, Any] | None:
    if re.search(r"\bleads?\b", text, re.I) and _DISPLAY_VERB_RE.search(text):
        return _limit(text)
    return None


def extract_list_followups(text: str) -> dict[str, Any] | None:
    if not (re.search(rf"\b{_FOLLOWUP}s?\b|\breminders?\b", text, re.I)
            and _DISPLAY_VERB_RE.search(text)):
        return None
    payload: dict[str, Any] = _limit(text)
    if re.search(r"\bpending\b|\bopen\b", text, re.I):
        payload["status"] = "pending"
    elif re.search(r"\b(?:completed|done|closed|finished)\b", text, re.I):
        payload["status"] = "completed"
    return payload
