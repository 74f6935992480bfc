"""
Pydantic models for agentkit API requests and responses.
This module defines the request and response schemas used by the agentkit API.
"""

from typing import Optional

from pydantic import (
    BaseModel,
    Field,
)

from agentkit.core.schema import (
    RunStatus,
    TokenUsage,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., description="User message for the agent")
    session_id: Optional[str] = Field(None, description="Session ID for conversation context")


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    status: RunStatus
    iterations: int
    usage: TokenUsage
    session_id: str
