"""Core data model: sessions, plans and tool outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

Role = Literal["user", "assistant"]


class Message(BaseModel):
    """One entry of the LLM-visible transcript."""

    role: Role
    content: str


class AuthenticatedUser(BaseModel):
    id: int
    name: str


class Session(BaseModel):
    """Persisted per-conversation state.

    ``history`` is append-only during a turn.  The store may persist a
    truncated copy, but the in-memory list is never shortened while a turn
    is still using it.
    """

    id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    history: list[Message] = Field(default_factory=list)
    authenticated_user: AuthenticatedUser | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.authenticated_user is not None

    def append(self, role: Role, content: str) -> None:
        self.history.append(Message(role=role, content=content))


# ── Plan (tagged union on ``action``) ────────────────────────────────


class ToolReference(BaseModel):
    name: str = Field(..., min_length=1)
    input: Any = None


class ToolPlan(BaseModel):
    thought: str = ""
    action: Literal["tool"]
    tool: ToolReference
    final_response: None = None
    confidence: Literal["low", "medium", "high"] | None = None


class RespondPlan(BaseModel):
    thought: str = ""
    action: Literal["respond"]
    final_response: str = Field(..., min_length=1)
    tool: None = None
    confidence: Literal["low", "medium", "high"] | None = None


Plan = Annotated[Union[ToolPlan, RespondPlan], Field(discriminator="action")]
PLAN_ADAPTER: TypeAdapter[ToolPlan | RespondPlan] = TypeAdapter(Plan)


# ── Tool outcome ─────────────────────────────────────────────────────


@dataclass
class ToolCallOutcome:
    """Result of one tool execution that reached the tool's own code."""

    name: str
    status: Literal["success", "error"]
    params: dict[str, Any]
    result: dict[str, Any]

    @property
    def succeeded(self) -> bool:
        return self.status == "success"
