"""Schemas for conversation listing and chat context."""

from typing import Any

from pydantic import BaseModel, Field


class ConversationListResponse(BaseModel):
    """Response for GET /convos."""

    conversations: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: str | None = Field(None, description="Pass back as cursor for the next page; null at the end.")


class ContextRequest(BaseModel):
    """Request body for POST /chat/context."""

    text: str = Field("", description="The user's chat message.")


class ContextResponse(BaseModel):
    """Grounding block for the chat prompt. Empty when retrieval is disabled or unavailable."""

    context: str = ""
