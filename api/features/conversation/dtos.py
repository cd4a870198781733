"""DTOs for the Conversation feature."""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from api.shared.dtos import BaseDTO


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationMessage(BaseDTO):
    """One message in a conversation. ``id`` and ``timestamp`` are filled by the store."""

    id: Optional[str] = Field(default=None, description="Message identifier")
    role: MessageRole = Field(description="Message role: user or assistant")
    content: str = Field(description="Message content")
    timestamp: Optional[int] = Field(
        default=None, description="Append time, ms since epoch"
    )

    class Config:
        use_enum_values = True


class ConversationSession(BaseDTO):
    """Persisted record for one conversation id."""

    id: str = Field(description="Conversation identifier")
    messages: List[ConversationMessage] = Field(
        default_factory=list, description="Messages in append order"
    )
    created_at: int = Field(description="Creation time, ms since epoch")
    updated_at: int = Field(description="Last append or patch, ms since epoch")
    title: Optional[str] = Field(default=None, description="Display title")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")


class AppendMessageRequest(BaseDTO):
    """Append a message to a conversation."""

    message: Optional[ConversationMessage] = Field(
        default=None, description="Message to append"
    )


class PatchConversationRequest(BaseDTO):
    """Partial session fields. Unknown fields (messages, createdAt, ...) are ignored."""

    title: Optional[str] = Field(default=None, description="Conversation title")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Metadata")


class DeleteConversationResponse(BaseDTO):
    success: bool = Field(default=True)
    conversation_id: str = Field(description="Deleted conversation identifier")


class ConversationListResponse(BaseDTO):
    """Sessions ordered by most recent activity."""

    conversations: List[ConversationSession] = Field(description="Conversations")


class TitleResponse(BaseDTO):
    conversation_id: str = Field(description="Conversation identifier")
    title: str = Field(description="Generated title")
