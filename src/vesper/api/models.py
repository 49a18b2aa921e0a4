"""
Pydantic models for Vesper API requests and responses.
This module defines the request and response schemas used by the Vesper API.
"""

from pydantic import (
    BaseModel,
    Field,
)

from vesper.core.schema import (
    AgentResult,
    RequestOptions,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., min_length=1, description="User message for Vesper")
    chat_id: str = Field(..., min_length=1, description="Conversation identity")
    options: RequestOptions = Field(
        default_factory=RequestOptions,
        description="Per-request overrides, e.g. {'context_memory': true, 'timeout_ms': 60000}",
    )


class MessageResponse(AgentResult):
    """API response returned to the caller (the agent result plus the chat id)."""

    chat_id: str


class ClearContextResponse(BaseModel):
    chat_id: str
    cleared: bool
