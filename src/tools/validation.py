"""Pydantic input models for every tool in the registry.

These are the boundary contracts: anything coming from user text, the
LLM, or stored JSON is validated here before a tool may touch the store.
Field names are snake_case; the camelCase spellings LLMs tend to produce
are accepted as aliases.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# RFC 5322-ish pattern, covers the vast majority of real-world emails
# without requiring an external dependency.
EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

MAX_LIST_LIMIT = 50
DEFAULT_LIST_LIMIT = 10

FollowUpStatus = Literal["pending", "completed"]


def validate_email(email: str) -> str | None:
    """Return an error message if *email* looks invalid, else ``None``."""
    if not email or not email.strip():
        return "No email address was provided."
    email = email.strip()
    if not EMAIL_RE.match(email):
        return f'"{email}" does not look like a valid email address.'
    return None


class ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


class VerifyPasscodeInput(ToolInput):
    name: str
    passcode: str = Field(..., min_length=1)


class CreateLeadInput(ToolInput):
    name: str = Field(..., min_length=1)
    email: str
    source: str | None = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        error = validate_email(value)
        if error:
            raise ValueError(error)
        return value.strip()


class RecordNoteInput(ToolInput):
    text: str = Field(..., min_length=1)


class ListInput(ToolInput):
    limit: int | None = Field(default=None, gt=0, le=MAX_LIST_LIMIT)


class ListNotesInput(ListInput):
    pass


class ListLeadsInput(ListInput):
    pass


class DeleteNoteInput(ToolInput):
    note_id: int = Field(..., gt=0, validation_alias=AliasChoices("note_id", "noteId", "id"))


class ScheduleFollowUpInput(ToolInput):
    title: str = Field(..., min_length=1)
    due_at: datetime | None = Field(default=None, validation_alias=AliasChoices("due_at", "dueAt"))
    notes: str | None = None


class ListFollowUpsInput(ListInput):
    status: FollowUpStatus | None = None


class CompleteFollowUpInput(ToolInput):
    follow_up_id: int = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("follow_up_id", "followUpId", "followup_id", "id"),
    )


class SearchDocsInput(ToolInput):
    question: str = Field(..., min_length=1)
