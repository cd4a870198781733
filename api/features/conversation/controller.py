"""Controller for the Conversation feature."""
import logging

from api.features.chat.service import ChatAgent
from api.features.conversation.dtos import (
    AppendMessageRequest,
    ConversationListResponse,
    ConversationSession,
    DeleteConversationResponse,
    PatchConversationRequest,
    TitleResponse,
)
from api.features.conversation.repository import ConversationStore
from api.shared.exceptions import ValidationError

logger = logging.getLogger("chat_relay.conversation")


class ConversationController:
    """Controller handling conversation reads, appends, patches and deletes."""

    def __init__(self, store: ConversationStore, agent: ChatAgent) -> None:
        self.store = store
        self.agent = agent

    async def get_conversation(self, *, conversation_id: str) -> ConversationSession:
        return await self.store.get_or_create(conversation_id)

    async def append_message(
        self, *, conversation_id: str, request: AppendMessageRequest
    ) -> ConversationSession:
        if request.message is None:
            raise ValidationError("Missing message")
        return await self.store.append(conversation_id, request.message)

    async def patch_conversation(
        self, *, conversation_id: str, request: PatchConversationRequest
    ) -> ConversationSession:
        return await self.store.patch(
            conversation_id, request.model_dump(exclude_unset=True)
        )

    async def delete_conversation(
        self, *, conversation_id: str
    ) -> DeleteConversationResponse:
        await self.store.remove(conversation_id)
        return DeleteConversationResponse(conversation_id=conversation_id)

    async def list_conversations(self) -> ConversationListResponse:
        return ConversationListResponse(conversations=await self.store.list())

    async def generate_title(self, *, conversation_id: str) -> TitleResponse:
        session = await self.store.get_or_create(conversation_id)
        title = await self.agent.generate_title(session.messages)
        await self.store.patch(conversation_id, {"title": title})
        logger.info(f"Titled conversation {conversation_id}: {title!r}")
        return TitleResponse(conversation_id=conversation_id, title=title)
