"""Request and response models for the HTTP surface."""

from datetime import datetime

from pydantic import BaseModel, Field

from chatloop.models.messages import Message


class ConversationRequest(BaseModel):
    """Request model for conversation endpoint."""

    message: str = Field(..., min_length=1)
    session_id: str | None = None


class ConversationResponse(BaseModel):
    """Response model for conversation endpoint."""

    response: str
    session_id: str
    rounds: int = 0


class HistoryResponse(BaseModel):
    """Full message history of a session."""

    session_id: str
    messages: list[Message]


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
