"""Tool definition types shared by the registry and the agent."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from pydantic import BaseModel

from src.models import Session

ToolResult = dict[str, Any]


@dataclass
class ToolContext:
    """What a tool may see of the current turn.

    Tools may read and set ``session.authenticated_user``; they must not
    touch ``session.history``.
    """

    session: Session

    @property
    def user_id(self) -> int | None:
        user = self.session.authenticated_user
        return user.id if user else None


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_model: type[BaseModel]
    execute: Callable[[Any, ToolContext], Awaitable[ToolResult]]


ToolRegistry = Mapping[str, ToolDefinition]


def failure(message: str) -> ToolResult:
    return {"success": False, "message": message}


NOT_AUTHENTICATED = "Not authenticated. Please share your name and passcode first."
