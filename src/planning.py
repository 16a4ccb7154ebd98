"""Turn raw LLM output into a validated :data:`~src.models.Plan`.

The model is instructed to answer with a single JSON object, but in
practice it sometimes wraps the object in prose or code fences, or emits
almost-JSON (trailing commas, bare keys, smart quotes).  Parsing therefore
proceeds in three stages and stops at the first success:

  1. strict ``json.loads`` of the whole text
  2. the substring between the first ``{`` and the last ``}``
  3. a best-effort textual repair of the whole text

If all three fail the caller substitutes :func:`fallback_plan`.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Callable

from pydantic import ValidationError

from src.models import PLAN_ADAPTER, RespondPlan, ToolPlan

logger = logging.getLogger(__name__)

FALLBACK_AUTHENTICATED = (
    "I had trouble interpreting the assistant's answer. Could you try again?"
)
FALLBACK_UNAUTHENTICATED = (
    "Access is by invitation with a passcode. Tell me your name and passcode, "
    "or ask me to search the documentation."
)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)
_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "„": '"', "‘": "'", "’": "'"})
# A double-quoted JSON string literal, honouring backslash escapes
_STRING_RE = re.compile(r'"(?:[^"\\]|\\.)*"?', re.DOTALL)


def _validate(data: object) -> ToolPlan | RespondPlan | None:
    try:
        return PLAN_ADAPTER.validate_python(data)
    except ValidationError as exc:
        logger.debug("Plan failed validation: %s", exc.errors()[:3])
        return None


def _try_parse(text: str) -> ToolPlan | RespondPlan | None:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return _validate(data)


# ── Repair ───────────────────────────────────────────────────────────


def _map_outside_strings(text: str, fn: Callable[[str], str]) -> str:
    """Apply *fn* only to the parts of *text* that are not string literals."""
    out: list[str] = []
    pos = 0
    for match in _STRING_RE.finditer(text):
        out.append(fn(text[pos:match.start()]))
        out.append(match.group(0))
        pos = match.end()
    out.append(fn(text[pos:]))
    return "".join(out)


def _fix_structure(segment: str) -> str:
    # 'single quoted' → "double quoted"
    segment = re.sub(r"([{\[,:]\s*)'([^'\\]*)'", r'\1"\2"', segment)
    # bare keys
    segment = re.sub(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:", r'\1"\2":', segment)
    # Python literals
    segment = re.sub(r"([:\[,]\s*)True\b", r"\1true", segment)
    segment = re.sub(r"([:\[,]\s*)False\b", r"\1false", segment)
    segment = re.sub(r"([:\[,]\s*)None\b", r"\1null", segment)
    # trailing commas
    segment = re.sub(r",\s*([}\]])", r"\1", segment)
    return segment


def _escape_control_chars(text: str) -> str:
    def _escape(match: re.Match[str]) -> str:
        literal = match.group(0)
        return literal.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")

    return _STRING_RE.sub(_escape, text)


def _balance(text: str) -> str:
    """Close an unterminated string and any unclosed braces or brackets."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()
    if in_string:
        text += '"'
    return text + "".join(reversed(stack))


def repair_json(raw: str) -> str:
    """Best-effort conversion of almost-JSON into parseable JSON.

    No correctness guarantee beyond being more permissive than
    ``json.loads``; the result may still fail to parse.
    """
    text = raw.strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)
    text = text.translate(_SMART_QUOTES)
    start = text.find("{")
    if start > 0:
        text = text[start:]
    text = _map_outside_strings(text, _fix_structure)
    text = _escape_control_chars(text)
    text = _balance(text)
    # balancing may have exposed a trailing comma before the new closer
    return _map_outside_strings(text, lambda s: re.sub(r",\s*([}\]])", r"\1", s))


# ── Public API ───────────────────────────────────────────────────────


def parse_plan(raw: str) -> ToolPlan | RespondPlan | None:
    """Parse *raw* model output into a Plan, or ``None`` if unrecoverable."""
    if not raw or not raw.strip():
        return None

    plan = _try_parse(raw)
    if plan is not None:
        return plan

    start, end = raw.find("{"), raw.rfind("}")
    if start >= 0 and end > start:
        plan = _try_parse(raw[start:end + 1])
        if plan is not None:
            logger.debug("Plan recovered from embedded JSON object")
            return plan

    plan = _try_parse(repair_json(raw))
    if plan is not None:
        logger.debug("Plan recovered after JSON repair")
    return plan


def fallback_plan(reason: str, authenticated: bool) -> RespondPlan:
    """Deterministic substitute used when no usable plan is available."""
    return RespondPlan(
        thought=f"Fallback: {reason}",
        action="respond",
        final_response=(
            FALLBACK_AUTHENTICATED if authenticated else FALLBACK_UNAUTHENTICATED
        ),
        confidence="low",
    )
