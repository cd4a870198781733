"""DTOs for the Chat feature."""
from typing import Optional

from pydantic import Field

from api.shared.dtos import BaseDTO


class ChatRequest(BaseDTO):
    """User message to relay. Both fields are required; presence is checked by the controller."""

    message: Optional[str] = Field(default=None, description="User message text")
    conversation_id: Optional[str] = Field(default=None, description="Conversation identifier")


class ChatResponse(BaseDTO):
    """Assistant reply."""

    content: str = Field(description="Assistant reply text")
    conversation_id: str = Field(description="Conversation identifier")
    message_id: str = Field(description="Identifier of the stored assistant message")
