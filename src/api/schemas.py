"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Incoming chat message from the frontend."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    conversation_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("conversation_id", "conversationId"),
        description="Unique conversation identifier for session continuity",
    )
    message: str = Field(..., min_length=1, max_length=4000, description="The user's message")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "sales-desk-agent"
